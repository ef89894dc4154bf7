from fastapi import Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from src.interfaces.quota import ConsumeRequest, QuotaDecision, QuotaResult
from src.interfaces.tiers import TierResponse, TierUpdateRequest
from src.interfaces.usage import UsageRecordRequest
from src.routes.credits import router
from src.routes.credits.general import _validated
from src.services.auth import verify_admin_token
from src.services.quota import quota_enforcer
from src.services.tier import TierResolver
from src.services.usage import usage_recorder
from src.utils.logger import setup_logger

logger = setup_logger(__name__)

REJECTION_STATUS: dict[QuotaResult, int] = {
    QuotaResult.credits_exhausted: status.HTTP_402_PAYMENT_REQUIRED,
    QuotaResult.quota_exceeded: status.HTTP_429_TOO_MANY_REQUESTS,
    QuotaResult.rate_limited: status.HTTP_429_TOO_MANY_REQUESTS,
}


@router.post("/{address}/consume", dependencies=[Depends(verify_admin_token)])  # type: ignore
async def consume_credits(address: str, request: ConsumeRequest) -> QuotaDecision:
    """Gate a billable operation of an internal service, to call before running it."""
    address = _validated(address)
    try:
        decision = await run_in_threadpool(quota_enforcer.check_and_consume, address, request.cost)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Error in consume_credits for {address}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    if not decision.allowed:
        headers = (
            {"Retry-After": str(decision.retry_after_seconds)} if decision.retry_after_seconds is not None else None
        )
        raise HTTPException(
            status_code=REJECTION_STATUS[decision.result], detail=decision.model_dump(mode="json"), headers=headers
        )
    return decision


@router.post("/{address}/usage", dependencies=[Depends(verify_admin_token)])  # type: ignore
def record_usage(address: str, request: UsageRecordRequest) -> dict[str, bool]:
    """Record a gated operation once it succeeded."""
    recorded = usage_recorder.record(_validated(address), request.endpoint, request.method, request.credits_consumed)
    return {"recorded": recorded}


@router.put("/{address}/tier", dependencies=[Depends(verify_admin_token)])  # type: ignore
def update_tier(address: str, request: TierUpdateRequest) -> TierResponse:
    """Manually assign a tier to an account."""
    address = _validated(address)
    try:
        return TierResolver.set_tier(address, request.tier)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Error in update_tier: {str(e)}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
