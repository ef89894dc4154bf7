from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class QuotaResult(str, Enum):
    allowed = "allowed"
    quota_exceeded = "quota_exceeded"
    rate_limited = "rate_limited"
    credits_exhausted = "credits_exhausted"


class QuotaDecision(BaseModel):
    """Outcome of a gating check, business rejections included."""

    address: str
    result: QuotaResult
    tier: str
    cost: float
    used: int
    daily_limit: int | None
    reset_at: datetime
    seconds_until_reset: int
    retry_after_seconds: int | None = None
    free_credits: float
    paid_credits: float
    message: str

    @property
    def allowed(self) -> bool:
        return self.result == QuotaResult.allowed


class QuotaStatus(BaseModel):
    tier: str
    used: int
    daily_limit: int | None
    reset_at: datetime
    seconds_until_reset: int


class ConsumeRequest(BaseModel):
    cost: float = 1
    endpoint: str
    method: str = "POST"
