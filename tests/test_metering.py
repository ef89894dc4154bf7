"""Tests for the metering context manager wrapping billable operations."""

import pytest

from src.interfaces.errors import InsufficientCreditsError, QuotaExceededError
from src.interfaces.quota import QuotaResult
from src.services.account import AccountStore
from src.services.metering import meter
from tests.conftest import ALICE, NOW, set_account


class TestMeter:
    def test_allowed_operation_is_recorded(self, enforcer, recorder):
        with meter(ALICE, "/agent/chat", enforcer=enforcer, recorder=recorder, now=NOW) as decision:
            assert decision.result == QuotaResult.allowed

        records = recorder.get_records(ALICE)
        assert len(records) == 1
        assert records[0].endpoint == "/agent/chat"
        assert records[0].timestamp == NOW

    def test_quota_exceeded_raises_before_running(self, enforcer, recorder):
        set_account(ALICE, quota_used=3)
        ran = False

        with pytest.raises(QuotaExceededError) as exc_info:
            with meter(ALICE, "/agent/chat", enforcer=enforcer, recorder=recorder, now=NOW):
                ran = True

        assert ran is False
        assert exc_info.value.decision.result == QuotaResult.quota_exceeded
        assert recorder.get_records(ALICE) == []

    def test_insufficient_credits(self, enforcer, recorder):
        set_account(ALICE, free_credits=0, paid_credits=0)

        with pytest.raises(InsufficientCreditsError):
            with meter(ALICE, "/agent/chat", enforcer=enforcer, recorder=recorder, now=NOW):
                pass

        assert AccountStore.get(ALICE).quota_used == 0

    def test_failed_operation_is_not_recorded(self, enforcer, recorder):
        with pytest.raises(RuntimeError):
            with meter(ALICE, "/agent/chat", enforcer=enforcer, recorder=recorder, now=NOW):
                raise RuntimeError("model backend down")

        assert recorder.get_records(ALICE) == []
