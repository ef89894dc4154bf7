from datetime import datetime, timedelta

from src.config import config
from src.interfaces.credits import REWARD_TOKEN
from src.interfaces.errors import ExternalLookupTimeoutError, PricingUnavailableError
from src.interfaces.tiers import TierConfig, TierResponse
from src.models.account import Account
from src.providers.holdings import HoldingsProvider, holdings_provider
from src.providers.pricing import PricingProvider, pricing_provider
from src.services.account import AccountStore
from src.tiers import TIERS_BY_NAME, get_tier, highest_tier, tier_for_holdings
from src.utils.general import get_current_time
from src.utils.logger import setup_logger

logger = setup_logger(__name__)


class TierResolver:
    def __init__(
        self,
        holdings: HoldingsProvider = holdings_provider,
        pricing: PricingProvider = pricing_provider,
        check_interval: timedelta = timedelta(seconds=config.TIER_CHECK_INTERVAL_SECONDS),
        retry_interval: timedelta = timedelta(seconds=config.TIER_CHECK_RETRY_SECONDS),
    ):
        self.holdings = holdings
        self.pricing = pricing
        self.check_interval = check_interval
        self.retry_interval = retry_interval

    def resolve_tier(self, address: str, now: datetime | None = None) -> TierConfig:
        """
        Get the effective tier of an account.

        The holdings-derived tier is re-evaluated at most once per check interval. When the holdings or price
        lookup fails, the last cached tier is kept: an outage never downgrades an account. A failed lookup is
        not attempted again before the retry interval.

        Args:
            address: Account address
            now: Current time

        Returns:
            The highest of the holdings tier and the manually assigned tier
        """
        now = now or get_current_time()
        account = AccountStore.get_or_default(address, now)

        if account.last_tier_check is not None and now - account.last_tier_check < self.check_interval:
            return highest_tier(account.tier, account.cached_tier)

        if account.tier_check_failed_at is not None and now - account.tier_check_failed_at < self.retry_interval:
            return highest_tier(account.tier, account.cached_tier)

        # External lookups happen before touching the account, never inside its update
        try:
            holding_usd = self.holdings_usd_value(address, now)
        except (ExternalLookupTimeoutError, PricingUnavailableError) as e:
            logger.warning(
                f"Degraded mode: tier lookup failed for {address} ({str(e)}), "
                f"keeping cached tier {account.cached_tier or 'none'}"
            )
            return self._record_failure(address, now)

        holdings_tier = tier_for_holdings(holding_usd)
        logger.debug(f"Holdings of {address} worth ${holding_usd:.2f}, tier {holdings_tier.name}")

        def _store(stored: Account) -> tuple[TierConfig, bool]:
            if stored.cached_tier != holdings_tier.name:
                logger.info(f"Tier of {address} changed from {stored.cached_tier} to {holdings_tier.name}")
            stored.cached_tier = holdings_tier.name
            stored.last_tier_check = now
            stored.tier_check_failed_at = None
            return highest_tier(stored.tier, stored.cached_tier), True

        return AccountStore.update(address, _store, now=now)

    @staticmethod
    def _record_failure(address: str, now: datetime) -> TierConfig:
        def _mark(stored: Account) -> tuple[TierConfig, bool]:
            stored.tier_check_failed_at = now
            return highest_tier(stored.tier, stored.cached_tier), True

        return AccountStore.update(address, _mark, now=now)

    def holdings_usd_value(self, address: str, now: datetime) -> float:
        balance = self.holdings.token_balance(address)
        if balance <= 0:
            return 0.0
        return balance * self.pricing.usd_price(REWARD_TOKEN, now)

    @staticmethod
    def set_tier(address: str, tier_name: str, now: datetime | None = None) -> TierResponse:
        """Manually assign a tier to an account. Raises ValueError if the tier is unknown."""
        if tier_name not in TIERS_BY_NAME:
            raise ValueError(f"Invalid tier '{tier_name}'. Valid tiers: {list(TIERS_BY_NAME.keys())}")

        def _assign(account: Account) -> tuple[TierResponse, bool]:
            account.tier = tier_name
            return TierResolver.to_response(account), True

        logger.info(f"Assigning tier {tier_name} to {address}")
        return AccountStore.update(address, _assign, now=now)

    @staticmethod
    def to_response(account: Account) -> TierResponse:
        return TierResponse(
            address=account.address,
            tier=highest_tier(account.tier, account.cached_tier).name,
            assigned_tier=get_tier(account.tier).name,
            holdings_tier=account.cached_tier,
        )


tier_resolver = TierResolver()
