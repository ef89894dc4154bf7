from datetime import datetime

from src.interfaces.credits import AccountBalance, CreditKind, LedgerResult
from src.models.account import Account
from src.services.account import AccountStore, FREE_CREDITS_WINDOW
from src.tiers import highest_tier
from src.utils.general import get_current_time
from src.utils.logger import setup_logger
from src.utils.windows import next_window_reset

logger = setup_logger(__name__)


class AccountLedger:
    """Free and paid credit balances of accounts."""

    @staticmethod
    def refill_free_credits(account: Account, now: datetime) -> bool:
        """
        Reset the free credits of an account to its tier allowance when the refill window is over.

        Returns:
            Boolean indicating if a refill happened
        """
        reset_at, has_reset = next_window_reset(now, account.free_credits_reset_at, FREE_CREDITS_WINDOW)
        if not has_reset:
            return False

        tier = highest_tier(account.tier, account.cached_tier)
        account.free_credits = tier.monthly_free_credits
        account.free_credits_reset_at = reset_at
        logger.debug(f"Refilled free credits of {account.address} to {tier.monthly_free_credits} (tier {tier.name})")
        return True

    @staticmethod
    def consume(account: Account, cost: float) -> LedgerResult:
        """Deduct `cost` from an account loaded in a unit of work, free credits first. Nothing is changed on failure."""
        if cost < 0:
            raise ValueError(f"Cost must be non-negative, got {cost}")

        if account.free_credits + account.paid_credits < cost:
            return LedgerResult.insufficient_credits

        from_free = min(account.free_credits, cost)
        account.free_credits = max(0.0, account.free_credits - from_free)
        account.paid_credits = max(0.0, account.paid_credits - (cost - from_free))
        return LedgerResult.consumed

    @staticmethod
    def apply_credit(account: Account, amount: float, kind: CreditKind) -> None:
        if amount < 0:
            raise ValueError(f"Credited amount must be non-negative, got {amount}")

        if kind == CreditKind.free:
            account.free_credits += amount
        else:
            account.paid_credits += amount
            account.lifetime_credits_purchased += amount

    @staticmethod
    def get_balance(address: str, now: datetime | None = None) -> AccountBalance:
        """
        Get the current balance of an account, without creating it.

        Args:
            address: Account address
            now: Current time, used to show a refill that is due but not yet persisted

        Returns:
            Free and paid credits with the effective tier
        """
        now = now or get_current_time()
        account = AccountStore.get_or_default(address, now)
        tier = highest_tier(account.tier, account.cached_tier)

        free_credits = account.free_credits
        _, refill_due = next_window_reset(now, account.free_credits_reset_at, FREE_CREDITS_WINDOW)
        if refill_due:
            free_credits = tier.monthly_free_credits

        return AccountBalance(
            address=address,
            tier=tier.name,
            free_credits=free_credits,
            paid_credits=account.paid_credits,
            total_credits=free_credits + account.paid_credits,
        )

    @staticmethod
    def reserve_and_consume(address: str, cost: float, now: datetime | None = None) -> LedgerResult:
        """
        Atomically deduct credits from an account if its total balance allows it.

        Args:
            address: Account address
            cost: Credits to deduct
            now: Current time

        Returns:
            LedgerResult.consumed, or LedgerResult.insufficient_credits without any deduction
        """
        now = now or get_current_time()
        logger.debug(f"Using {cost} credits from address {address}")

        def _consume(account: Account) -> tuple[LedgerResult, bool]:
            AccountLedger.refill_free_credits(account, now)
            result = AccountLedger.consume(account, cost)
            return result, result == LedgerResult.consumed

        result = AccountStore.update(address, _consume, now=now)
        if result == LedgerResult.insufficient_credits:
            logger.info(f"Insufficient credits for {address}: requested {cost}")
        return result

    @staticmethod
    def credit(address: str, amount: float, kind: CreditKind, now: datetime | None = None) -> AccountBalance:
        """Add free or paid credits to an account, creating it if needed."""
        now = now or get_current_time()
        logger.debug(f"Adding {amount} {kind.value} credits to address {address}")

        def _credit(account: Account) -> tuple[AccountBalance, bool]:
            AccountLedger.refill_free_credits(account, now)
            AccountLedger.apply_credit(account, amount, kind)
            return AccountLedger.to_balance(account), True

        return AccountStore.update(address, _credit, now=now)

    @staticmethod
    def to_balance(account: Account) -> AccountBalance:
        return AccountBalance(
            address=account.address,
            tier=highest_tier(account.tier, account.cached_tier).name,
            free_credits=account.free_credits,
            paid_credits=account.paid_credits,
            total_credits=account.total_credits,
        )
