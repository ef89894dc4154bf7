from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.interfaces.quota import QuotaDecision


class PricingUnavailableError(Exception):
    """The USD price of a token couldn't be fetched and no fresh enough cached value exists."""

    def __init__(self, token: str, reason: str):
        super().__init__(f"Price unavailable for {token}: {reason}")
        self.token = token
        self.reason = reason


class ExternalLookupTimeoutError(Exception):
    """An external holdings lookup failed or timed out."""

    def __init__(self, address: str, reason: str):
        super().__init__(f"Holdings lookup failed for {address}: {reason}")
        self.address = address
        self.reason = reason


class AccountUpdateConflictError(Exception):
    """Optimistic concurrency retries were exhausted for an account update."""

    def __init__(self, address: str, attempts: int):
        super().__init__(f"Account {address} update still conflicting after {attempts} attempts")
        self.address = address
        self.attempts = attempts


class GatedOperationRejected(Exception):
    """Base class for business rejections raised by the metering helper."""

    def __init__(self, decision: "QuotaDecision"):
        super().__init__(decision.message)
        self.decision = decision


class QuotaExceededError(GatedOperationRejected):
    pass


class RateLimitedError(GatedOperationRejected):
    pass


class InsufficientCreditsError(GatedOperationRejected):
    pass
