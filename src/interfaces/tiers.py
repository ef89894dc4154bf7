from typing import Annotated

from pydantic import BaseModel, Field


class TierConfig(BaseModel):
    name: str
    min_holding_usd: Annotated[float, Field(ge=0)]
    daily_limit: Annotated[int, Field(gt=0)] | None  # None means unlimited
    rate_limit_per_minute: Annotated[int, Field(gt=0)]
    bonus_percent_for_reward_token: Annotated[float, Field(ge=0)]
    monthly_free_credits: Annotated[float, Field(ge=0)] = 0

    @property
    def is_unlimited(self) -> bool:
        return self.daily_limit is None


class TierUpdateRequest(BaseModel):
    tier: str


class TierResponse(BaseModel):
    address: str
    tier: str
    assigned_tier: str
    holdings_tier: str | None
