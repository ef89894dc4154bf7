from datetime import datetime, timedelta

from src.interfaces.credits import LedgerResult
from src.interfaces.quota import QuotaDecision, QuotaResult, QuotaStatus
from src.interfaces.tiers import TierConfig
from src.models.account import Account
from src.services.account import AccountStore, QUOTA_WINDOW
from src.services.ledger import AccountLedger
from src.services.tier import TierResolver, tier_resolver
from src.tiers import highest_tier, next_tier
from src.utils.general import get_current_time
from src.utils.logger import setup_logger
from src.utils.windows import next_window_reset, seconds_until

logger = setup_logger(__name__)

RATE_WINDOW = timedelta(minutes=1)


def format_duration(seconds: int) -> str:
    hours, remainder = divmod(seconds, 3600)
    minutes = remainder // 60
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m"
    return f"{seconds}s"


def upgrade_hint(tier: TierConfig) -> str:
    upgrade = next_tier(tier.name)
    if upgrade is None:
        return ""
    limit = "unlimited messages" if upgrade.is_unlimited else f"{upgrade.daily_limit} messages/day"
    return f" Hold ${upgrade.min_holding_usd:g} in $GHOST to unlock the {upgrade.name} tier ({limit})."


class QuotaEnforcer:
    def __init__(self, resolver: TierResolver = tier_resolver):
        self.resolver = resolver

    def check_and_consume(self, address: str, cost: float = 1, now: datetime | None = None) -> QuotaDecision:
        """
        Decide whether a billable operation may run and charge it if so.

        The quota window reset, the quota increment, the rate-limit increment and the credit deduction are
        written in a single account update, or not at all when the operation is rejected.

        Args:
            address: Account address
            cost: Credits charged for the operation
            now: Current time

        Returns:
            QuotaDecision describing the outcome, business rejections included
        """
        if cost < 0:
            raise ValueError(f"Cost must be non-negative, got {cost}")

        now = now or get_current_time()
        # May query holdings, so it runs before the account update
        tier = self.resolver.resolve_tier(address, now)

        def _gate(account: Account) -> tuple[QuotaDecision, bool]:
            AccountLedger.refill_free_credits(account, now)

            reset_at, has_reset = next_window_reset(now, account.quota_reset_at, QUOTA_WINDOW)
            if has_reset:
                account.quota_used = 0
                account.quota_reset_at = reset_at

            if account.rate_window_start is None or now >= account.rate_window_start + RATE_WINDOW:
                account.rate_window_start = now
                account.rate_window_count = 0

            if tier.daily_limit is not None and account.quota_used + 1 > tier.daily_limit:
                return self._decision(account, tier, cost, now, QuotaResult.quota_exceeded), False

            if account.rate_window_count + 1 > tier.rate_limit_per_minute:
                return self._decision(account, tier, cost, now, QuotaResult.rate_limited), False

            # Tentative increments, discarded with the whole update if the charge fails
            account.quota_used += 1
            account.rate_window_count += 1
            if AccountLedger.consume(account, cost) == LedgerResult.insufficient_credits:
                account.quota_used -= 1
                account.rate_window_count -= 1
                return self._decision(account, tier, cost, now, QuotaResult.credits_exhausted), False

            return self._decision(account, tier, cost, now, QuotaResult.allowed), True

        decision = AccountStore.update(address, _gate, now=now)

        if decision.allowed:
            logger.debug(f"Allowed {address}: {decision.used}/{decision.daily_limit} ({decision.tier})")
        else:
            logger.info(f"Rejected {address} ({decision.result.value}): {decision.message}")
        return decision

    def get_quota_status(self, address: str, now: datetime | None = None) -> QuotaStatus:
        """Read-only view of the current quota window, without resolving holdings."""
        now = now or get_current_time()
        account = AccountStore.get_or_default(address, now)
        tier = highest_tier(account.tier, account.cached_tier)

        reset_at, has_reset = next_window_reset(now, account.quota_reset_at, QUOTA_WINDOW)
        used = 0 if has_reset else account.quota_used
        return QuotaStatus(
            tier=tier.name,
            used=used,
            daily_limit=tier.daily_limit,
            reset_at=reset_at,
            seconds_until_reset=seconds_until(now, reset_at),
        )

    @staticmethod
    def _decision(
        account: Account, tier: TierConfig, cost: float, now: datetime, result: QuotaResult
    ) -> QuotaDecision:
        reset_in = seconds_until(now, account.quota_reset_at)
        retry_after: int | None = None

        if result == QuotaResult.allowed:
            if tier.daily_limit is None:
                message = "Unlimited daily requests."
            else:
                message = f"{tier.daily_limit - account.quota_used} of {tier.daily_limit} daily requests left."
        elif result == QuotaResult.quota_exceeded:
            retry_after = reset_in
            message = (
                f"Daily limit reached ({account.quota_used}/{tier.daily_limit}) for the {tier.name} tier. "
                f"Resets in {format_duration(reset_in)}." + upgrade_hint(tier)
            )
        elif result == QuotaResult.rate_limited:
            retry_after = max(1, seconds_until(now, account.rate_window_start + RATE_WINDOW))
            message = (
                f"Rate limit of {tier.rate_limit_per_minute} requests per minute reached, "
                f"retry in {format_duration(retry_after)}." + upgrade_hint(tier)
            )
        else:
            message = (
                f"Not enough credits: {cost:g} needed, {account.total_credits:g} available. "
                f"Deposit USDC, SOL or $GHOST to top up your balance."
            )

        return QuotaDecision(
            address=account.address,
            result=result,
            tier=tier.name,
            cost=cost,
            used=account.quota_used,
            daily_limit=tier.daily_limit,
            reset_at=account.quota_reset_at,
            seconds_until_reset=reset_in,
            retry_after_seconds=retry_after,
            free_credits=account.free_credits,
            paid_credits=account.paid_credits,
            message=message,
        )


quota_enforcer = QuotaEnforcer()
