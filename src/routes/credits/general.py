from datetime import timedelta

from fastapi import HTTPException, Query, status

from src.config import config
from src.interfaces.credits import (
    BalanceResponse,
    PaymentToken,
    PricingResponse,
    REWARD_TOKEN,
    STABLE_TOKENS,
)
from src.interfaces.errors import PricingUnavailableError
from src.interfaces.usage import UsageHistoryResponse
from src.routes.credits import router
from src.services.deposit import deposit_processor
from src.services.ledger import AccountLedger
from src.services.quota import quota_enforcer
from src.services.usage import usage_recorder
from src.tiers import TIERS, get_tier
from src.utils.address import validate_address
from src.utils.general import get_current_time
from src.utils.logger import setup_logger

logger = setup_logger(__name__)


def _validated(address: str) -> str:
    try:
        return validate_address(address)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/pricing", description="Credit pricing, tiers and an optional deposit preview")  # type: ignore
def get_pricing(
    address: str | None = Query(None, description="Account used for the tier bonus of the preview"),
    token: PaymentToken | None = Query(None, description="Token of the previewed deposit"),
    amount: float | None = Query(None, gt=0, description="Amount of the previewed deposit"),
) -> PricingResponse:
    current_tier = None
    if address is not None:
        current_tier = AccountLedger.get_balance(_validated(address)).tier

    preview = None
    if token is not None and amount is not None:
        try:
            preview = deposit_processor.preview_credits(token, amount, address)
        except PricingUnavailableError as e:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return PricingResponse(
        price_per_thousand_credits=config.PRICE_PER_THOUSAND_CREDITS,
        tiers=TIERS,
        treasury_address=config.TREASURY_ADDRESS,
        reward_token=REWARD_TOKEN,
        stable_tokens=sorted(STABLE_TOKENS, key=lambda token: token.value),
        current_tier=current_tier,
        preview=preview,
    )


@router.get("/{address}/balance", description="Credit balance, tier and quota of an account")  # type: ignore
def get_balance(address: str) -> BalanceResponse:
    address = _validated(address)
    try:
        now = get_current_time()
        balance = AccountLedger.get_balance(address, now)
        quota = quota_enforcer.get_quota_status(address, now)
        tier = get_tier(balance.tier)
        return BalanceResponse(
            address=address,
            tier=tier.name,
            free_credits=balance.free_credits,
            paid_credits=balance.paid_credits,
            total_credits=balance.total_credits,
            rate_limit_per_minute=tier.rate_limit_per_minute,
            daily_limit=tier.daily_limit,
            quota_used=quota.used,
            quota_reset_at=quota.reset_at,
            seconds_until_reset=quota.seconds_until_reset,
        )
    except Exception as e:
        logger.error(f"Error retrieving balance for {address}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Error retrieving credit balance: {str(e)}"
        )


@router.get("/{address}/usage", description="Recent calls, deposits and usage summary of an account")  # type: ignore
def get_usage_history(
    address: str, days: int = Query(30, ge=1, le=365, description="Number of days of history")
) -> UsageHistoryResponse:
    """
    Billing history of an account over the last `days` days:
    - The 20 most recent gated calls
    - Deposits
    - Daily credits and calls breakdown
    """
    address = _validated(address)
    try:
        since = get_current_time() - timedelta(days=days)
        summary, daily_usage = usage_recorder.get_summary(address, start=since)
        deposits = deposit_processor.get_deposits(address, since=since)
        summary.total_deposits = len(deposits)

        return UsageHistoryResponse(
            address=address,
            tier=AccountLedger.get_balance(address).tier,
            recent_calls=usage_recorder.get_records(address, start=since, limit=20),
            deposits=deposits,
            daily_usage=daily_usage,
            summary=summary,
        )
    except Exception as e:
        logger.error(f"Error retrieving usage history for {address}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Error retrieving usage history: {str(e)}"
        )
