from fastapi import Depends, HTTPException, Response, status
from fastapi.concurrency import run_in_threadpool

from src.interfaces.credits import (
    DepositEvent,
    DepositProcessingStatus,
    DepositResult,
    RetryPendingDepositsResponse,
)
from src.routes.credits import router
from src.services.auth import verify_admin_token, verify_deposit_signature
from src.services.deposit import deposit_processor
from src.utils.cron import scheduler, deposits_retry_lock
from src.utils.logger import setup_logger

logger = setup_logger(__name__)


@router.post("/deposits", dependencies=[Depends(verify_deposit_signature)])  # type: ignore
async def receive_deposit(event: DepositEvent, response: Response) -> DepositResult:
    """
    Receive a confirmed deposit from the payment watcher.

    Deliveries are at-least-once: a replayed deposit answers `already_processed` without crediting again. When
    the token price is unavailable the deposit is kept pending, answered with 202 and retried later.
    """
    logger.debug(f"Received deposit event: {event.model_dump_json()}")
    try:
        result = await run_in_threadpool(
            deposit_processor.process_deposit,
            event.deposit_id,
            event.address,
            event.token,
            event.amount,
            event.confirmed_at,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Error processing deposit {event.deposit_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error processing deposit")

    if result.status == DepositProcessingStatus.pricing_unavailable:
        response.status_code = status.HTTP_202_ACCEPTED
    return result


@scheduler.scheduled_job("interval", seconds=60)
@router.post(
    "/deposits/retry", dependencies=[Depends(verify_admin_token)], description="Retry pending deposits"
)  # type: ignore
async def retry_pending_deposits() -> RetryPendingDepositsResponse:
    if deposits_retry_lock.locked():
        return RetryPendingDepositsResponse(processed=[])  # Skip execution if already running

    async with deposits_retry_lock:
        processed = await run_in_threadpool(deposit_processor.retry_pending_deposits)
    return RetryPendingDepositsResponse(processed=processed)
