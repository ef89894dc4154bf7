from datetime import datetime

from pydantic import BaseModel

from src.interfaces.credits import DepositResponse


class UsageCall(BaseModel):
    endpoint: str
    method: str
    credits: float
    timestamp: datetime


class DailyUsage(BaseModel):
    """Credits and calls for a single day."""

    date: str
    credits: float
    calls: int


class UsageSummary(BaseModel):
    total_api_calls: int
    total_credits_spent: float
    total_deposits: int = 0


class UsageHistoryResponse(BaseModel):
    address: str
    tier: str
    recent_calls: list[UsageCall]
    deposits: list[DepositResponse]
    daily_usage: list[DailyUsage]
    summary: UsageSummary


class UsageRecordRequest(BaseModel):
    endpoint: str
    method: str = "POST"
    credits_consumed: float
