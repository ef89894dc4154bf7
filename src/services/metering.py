from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from src.interfaces.errors import InsufficientCreditsError, QuotaExceededError, RateLimitedError
from src.interfaces.quota import QuotaDecision, QuotaResult
from src.services.quota import QuotaEnforcer, quota_enforcer
from src.services.usage import UsageRecorder, usage_recorder

REJECTIONS: dict[QuotaResult, type] = {
    QuotaResult.quota_exceeded: QuotaExceededError,
    QuotaResult.rate_limited: RateLimitedError,
    QuotaResult.credits_exhausted: InsufficientCreditsError,
}


@contextmanager
def meter(
    address: str,
    endpoint: str,
    method: str = "POST",
    cost: float = 1,
    enforcer: QuotaEnforcer = quota_enforcer,
    recorder: UsageRecorder = usage_recorder,
    now: datetime | None = None,
) -> Iterator[QuotaDecision]:
    """
    Wrap a billable operation: charge it before it runs, record it once it succeeded.

    Usage:
        with meter(address, "/agent/chat", cost=1):
            response = generate_reply(...)

    Raises:
        QuotaExceededError, RateLimitedError, InsufficientCreditsError: The operation must not run
    """
    decision = enforcer.check_and_consume(address, cost, now)
    if not decision.allowed:
        raise REJECTIONS[decision.result](decision)

    yield decision
    recorder.record(address, endpoint, method, cost, now)
