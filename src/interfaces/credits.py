from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, Field, field_validator

from src.interfaces.tiers import TierConfig
from src.utils.address import is_solana_address


class PaymentToken(str, Enum):
    usdc = "usdc"
    sol = "sol"
    ghost = "ghost"  # Reward token, deposits get the tier bonus


STABLE_TOKENS: frozenset[PaymentToken] = frozenset({PaymentToken.usdc})
REWARD_TOKEN: PaymentToken = PaymentToken.ghost


class CreditKind(str, Enum):
    free = "free"
    paid = "paid"


class LedgerResult(str, Enum):
    consumed = "consumed"
    insufficient_credits = "insufficient_credits"


class DepositStatus(str, Enum):
    pending = "pending"
    credited = "credited"


class DepositProcessingStatus(str, Enum):
    credited = "credited"
    already_processed = "already_processed"
    pricing_unavailable = "pricing_unavailable"


class AccountBalance(BaseModel):
    address: str
    tier: str
    free_credits: float
    paid_credits: float
    total_credits: float


class BalanceResponse(BaseModel):
    address: str
    tier: str
    free_credits: float
    paid_credits: float
    total_credits: float
    rate_limit_per_minute: int
    daily_limit: int | None
    quota_used: int
    quota_reset_at: datetime
    seconds_until_reset: int


class DepositEvent(BaseModel):
    deposit_id: Annotated[str, Field(min_length=1)]
    address: str
    token: PaymentToken
    amount: Annotated[float, Field(gt=0)]
    confirmed_at: datetime | None = None

    @field_validator("address")
    def validate_address(cls, value):
        if not is_solana_address(value):
            raise ValueError(f"Invalid Solana address {value}")
        return value


class CreditComputation(BaseModel):
    token: PaymentToken
    amount: float
    usd_price: float
    usd_value: float
    base_credits: float
    bonus_percent: float
    credits: int


class DepositResult(BaseModel):
    deposit_id: str
    status: DepositProcessingStatus
    credits_granted: int = 0
    usd_value: float | None = None
    bonus_applied: float = 0
    message: str | None = None


class DepositResponse(BaseModel):
    id: str
    token: PaymentToken
    amount: float
    usd_value_at_time: float | None
    credits_granted: int | None
    bonus_applied: float | None
    status: DepositStatus
    created_at: datetime
    credited_at: datetime | None


class RetryPendingDepositsResponse(BaseModel):
    processed: list[DepositResult]


class PricingResponse(BaseModel):
    price_per_thousand_credits: float
    tiers: list[TierConfig]
    treasury_address: str
    reward_token: PaymentToken
    stable_tokens: list[PaymentToken]
    current_tier: str | None = None
    preview: CreditComputation | None = None
