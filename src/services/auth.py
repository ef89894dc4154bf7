import hashlib
import hmac
import time
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.config import config
from src.utils.logger import setup_logger

logger = setup_logger(__name__)

security = HTTPBearer(description="Shared secret of internal services and administrators")

# Maximum age of a deposit webhook in seconds before rejecting it (5 minutes)
MAX_WEBHOOK_AGE = 300


def verify_admin_token(credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)]) -> None:
    """Check the bearer token against the configured admin secret."""
    if not config.ADMIN_SECRET or not hmac.compare_digest(credentials.credentials, config.ADMIN_SECRET):
        logger.warning("Invalid admin token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def sign_webhook_payload(timestamp: str, body: str, secret: str) -> str:
    return hmac.new(secret.encode(), f"{timestamp}.{body}".encode(), hashlib.sha256).hexdigest()


async def verify_deposit_signature(
    request: Request,
    signature: str = Header(None, alias="X-Deposit-Signature"),
    timestamp: str = Header(None, alias="X-Deposit-Timestamp"),
) -> None:
    """
    Verify a deposit event sent by the payment watcher.

    The signature is an HMAC-SHA256 of "{timestamp}.{raw body}" with DEPOSIT_WEBHOOK_SECRET, and the timestamp
    must be recent to limit replays of captured requests.
    """
    if not signature:
        logger.warning("Missing signature header in deposit webhook request")
        raise HTTPException(status_code=401, detail="Missing signature")

    if not timestamp:
        logger.warning("Missing timestamp header in deposit webhook request")
        raise HTTPException(status_code=401, detail="Missing timestamp")

    try:
        webhook_timestamp = int(timestamp)
    except ValueError:
        logger.warning(f"Invalid timestamp format: {timestamp}")
        raise HTTPException(status_code=401, detail="Invalid timestamp format")

    current_time = int(time.time())

    # Check if webhook is too old
    if current_time - webhook_timestamp > MAX_WEBHOOK_AGE:
        logger.warning(f"Webhook timestamp too old: {webhook_timestamp}, current time: {current_time}")
        raise HTTPException(status_code=401, detail="Webhook expired")

    # Check if webhook is from the future (with a small tolerance)
    if webhook_timestamp > current_time + 30:
        logger.warning(f"Webhook timestamp from the future: {webhook_timestamp}, current time: {current_time}")
        raise HTTPException(status_code=401, detail="Invalid timestamp")

    body = await request.body()
    expected_signature = sign_webhook_payload(timestamp, body.decode("utf-8"), config.DEPOSIT_WEBHOOK_SECRET)

    # Secure comparison to prevent timing attacks
    if not config.DEPOSIT_WEBHOOK_SECRET or not hmac.compare_digest(expected_signature, signature):
        logger.warning("Invalid deposit webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")
