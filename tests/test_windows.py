"""Tests for the window arithmetic shared by the quota, rate limit and free credit refills."""

from datetime import datetime, timedelta

from src.utils.windows import next_window_reset, seconds_until, window_end_after

DAY = timedelta(hours=24)


class TestWindowEndAfter:
    def test_next_utc_midnight(self):
        assert window_end_after(datetime(2026, 3, 10, 15, 0), DAY) == datetime(2026, 3, 11)

    def test_exactly_at_boundary_starts_a_new_window(self):
        assert window_end_after(datetime(2026, 3, 10), DAY) == datetime(2026, 3, 11)

    def test_hourly_window(self):
        assert window_end_after(datetime(2026, 3, 10, 15, 42), timedelta(hours=1)) == datetime(2026, 3, 10, 16)


class TestNextWindowReset:
    def test_uninitialized_window_is_seeded(self):
        reset_at, has_reset = next_window_reset(datetime(2026, 3, 10, 15, 0), None, DAY)

        assert has_reset is True
        assert reset_at == datetime(2026, 3, 11)

    def test_before_reset_nothing_changes(self):
        stored = datetime(2026, 3, 11)
        reset_at, has_reset = next_window_reset(datetime(2026, 3, 10, 23, 59), stored, DAY)

        assert has_reset is False
        assert reset_at == stored

    def test_reset_exactly_at_boundary(self):
        reset_at, has_reset = next_window_reset(datetime(2026, 3, 11), datetime(2026, 3, 11), DAY)

        assert has_reset is True
        assert reset_at == datetime(2026, 3, 12)

    def test_skips_missed_windows_in_one_step(self):
        """After several idle days the window lands on the one containing now, not on the next one."""
        reset_at, has_reset = next_window_reset(datetime(2026, 3, 14, 9, 30), datetime(2026, 3, 11), DAY)

        assert has_reset is True
        assert reset_at == datetime(2026, 3, 15)
        assert reset_at > datetime(2026, 3, 14, 9, 30)

    def test_monthly_refill_window(self):
        stored = datetime(2026, 1, 1)
        reset_at, has_reset = next_window_reset(datetime(2026, 3, 5), stored, timedelta(days=30))

        assert has_reset is True
        assert reset_at == datetime(2026, 4, 1)


class TestSecondsUntil:
    def test_future_moment(self):
        assert seconds_until(datetime(2026, 3, 10, 23, 0), datetime(2026, 3, 11)) == 3600

    def test_past_moment_is_zero(self):
        assert seconds_until(datetime(2026, 3, 11, 1, 0), datetime(2026, 3, 11)) == 0
