from datetime import datetime, timedelta


def window_end_after(now: datetime, window: timedelta) -> datetime:
    """End of the window aligned on the epoch that contains `now`.

    With a 24h window this is the next UTC midnight, used to seed the reset time of new accounts.
    """
    epoch = datetime(1970, 1, 1)
    elapsed_windows = (now - epoch) // window
    return epoch + (elapsed_windows + 1) * window


def next_window_reset(now: datetime, reset_at: datetime | None, window: timedelta) -> tuple[datetime, bool]:
    """
    Compute the reset time of the window containing `now`.

    Args:
        now: Current time
        reset_at: End of the window currently stored for the account, None if never initialized
        window: Length of a window

    Returns:
        A tuple (reset_at, has_reset). When `now` is before `reset_at` nothing changes. Otherwise the
        window jumps directly to the one containing `now`, however many windows were missed.
    """
    if reset_at is None:
        return window_end_after(now, window), True

    if now < reset_at:
        return reset_at, False

    missed_windows = (now - reset_at) // window
    return reset_at + (missed_windows + 1) * window, True


def seconds_until(now: datetime, moment: datetime) -> int:
    return max(0, int((moment - now).total_seconds()))
