from fastapi import APIRouter

router = APIRouter(prefix="/credits", tags=["Credits"])

# Import routes
from src.routes.credits.general import get_pricing, get_balance, get_usage_history  # noqa
from src.routes.credits.deposits import receive_deposit, retry_pending_deposits  # noqa
from src.routes.credits.metering import consume_credits, record_usage, update_tier  # noqa
