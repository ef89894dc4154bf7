from datetime import datetime, timezone


def get_current_time() -> datetime:
    """Current UTC time as a naive datetime, matching the TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
