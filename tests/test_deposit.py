"""Tests for deposit processing: credit conversion, idempotency and pending retries."""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy import select

from src.interfaces.credits import DepositProcessingStatus, DepositStatus, PaymentToken
from src.models.base import SessionLocal
from src.models.deposit import Deposit
from src.services.account import AccountStore
from src.services.deposit import compute_credits
from tests.conftest import ALICE, BOB, NOW, set_account


def _stored_deposit(deposit_id: str) -> Deposit:
    with SessionLocal() as db:
        return db.scalars(select(Deposit).where(Deposit.id == deposit_id)).one()


class TestComputeCredits:
    def test_reward_token_gets_bonus(self):
        computation = compute_credits(PaymentToken.ghost, 1000, 0.01, 20, 1)

        assert computation.usd_value == pytest.approx(10)
        assert computation.base_credits == pytest.approx(10000)
        assert computation.bonus_percent == 20
        assert computation.credits == 12000

    def test_stable_token_gets_no_bonus(self):
        computation = compute_credits(PaymentToken.usdc, 10, 1.0, 20, 1)

        assert computation.bonus_percent == 0
        assert computation.credits == 10000

    def test_credits_are_floored(self):
        assert compute_credits(PaymentToken.usdc, 0.0015, 1.0, 0, 1).credits == 1

    def test_price_per_thousand_credits(self):
        assert compute_credits(PaymentToken.sol, 0.1, 150.0, 20, 2).credits == 7500


class TestProcessDeposit:
    def test_credits_reward_token_deposit_with_bonus(self, processor):
        set_account(ALICE, paid_credits=0)

        result = processor.process_deposit("sig-ghost", ALICE, PaymentToken.ghost, 1000, now=NOW)

        assert result.status == DepositProcessingStatus.credited
        assert result.credits_granted == 12000
        assert result.bonus_applied == 20
        account = AccountStore.get(ALICE)
        assert account.paid_credits == 12000
        assert account.lifetime_credits_purchased == 12000

        deposit = _stored_deposit("sig-ghost")
        assert deposit.status == DepositStatus.credited
        assert deposit.credits_granted == 12000
        assert deposit.credited_at == NOW

    def test_credits_stable_deposit_without_bonus(self, processor):
        result = processor.process_deposit("sig-usdc", ALICE, PaymentToken.usdc, 10, now=NOW)

        assert result.credits_granted == 10000
        assert result.bonus_applied == 0
        assert AccountStore.get(ALICE).paid_credits == 10000

    def test_creates_unknown_account(self, processor):
        processor.process_deposit("sig-new", BOB, PaymentToken.sol, 0.1, now=NOW)

        assert AccountStore.get(BOB).paid_credits == 15000

    def test_replay_is_not_credited_twice(self, processor):
        first = processor.process_deposit("sig-replay", ALICE, PaymentToken.usdc, 10, now=NOW)
        second = processor.process_deposit("sig-replay", ALICE, PaymentToken.usdc, 10, now=NOW)

        assert first.status == DepositProcessingStatus.credited
        assert second.status == DepositProcessingStatus.already_processed
        assert second.credits_granted == 0
        assert AccountStore.get(ALICE).paid_credits == 10000

    def test_replay_with_different_data_keeps_stored_deposit(self, processor):
        processor.process_deposit("sig-tampered", ALICE, PaymentToken.usdc, 10, now=NOW)

        result = processor.process_deposit("sig-tampered", BOB, PaymentToken.usdc, 5000, now=NOW)

        assert result.status == DepositProcessingStatus.already_processed
        assert AccountStore.get(BOB).paid_credits == 0

    def test_non_positive_amount_rejected(self, processor):
        with pytest.raises(ValueError):
            processor.process_deposit("sig-zero", ALICE, PaymentToken.usdc, 0, now=NOW)

    def test_concurrent_duplicate_deliveries_credit_once(self, processor):
        set_account(ALICE, paid_credits=0)

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(
                executor.map(
                    lambda _: processor.process_deposit("sig-dup", ALICE, PaymentToken.usdc, 10, now=NOW), range(8)
                )
            )

        statuses = [result.status for result in results]
        assert statuses.count(DepositProcessingStatus.credited) == 1
        assert statuses.count(DepositProcessingStatus.already_processed) == 7
        assert AccountStore.get(ALICE).paid_credits == 10000


class TestPricingUnavailable:
    def test_deposit_stays_pending_with_backoff(self, processor, pricing):
        pricing.unavailable = True

        result = processor.process_deposit("sig-pending", ALICE, PaymentToken.ghost, 1000, now=NOW)

        assert result.status == DepositProcessingStatus.pricing_unavailable
        deposit = _stored_deposit("sig-pending")
        assert deposit.status == DepositStatus.pending
        assert deposit.attempts == 1
        assert deposit.next_attempt_at == NOW + timedelta(seconds=30)
        assert "price API down" in deposit.last_error
        assert AccountStore.get(ALICE).paid_credits == 0

    def test_backoff_doubles_with_attempts(self, processor, pricing):
        pricing.unavailable = True

        processor.process_deposit("sig-backoff", ALICE, PaymentToken.ghost, 1000, now=NOW)
        processor.process_deposit("sig-backoff", ALICE, PaymentToken.ghost, 1000, now=NOW)

        deposit = _stored_deposit("sig-backoff")
        assert deposit.attempts == 2
        assert deposit.next_attempt_at == NOW + timedelta(seconds=60)

    def test_retry_waits_for_backoff_then_credits(self, processor, pricing):
        pricing.unavailable = True
        processor.process_deposit("sig-retry", ALICE, PaymentToken.ghost, 1000, now=NOW)
        pricing.unavailable = False

        assert processor.retry_pending_deposits(NOW + timedelta(seconds=10)) == []

        results = processor.retry_pending_deposits(NOW + timedelta(seconds=31))

        assert len(results) == 1
        assert results[0].status == DepositProcessingStatus.credited
        assert results[0].credits_granted == 12000
        assert _stored_deposit("sig-retry").status == DepositStatus.credited
        assert AccountStore.get(ALICE).paid_credits == 12000

    def test_credited_deposits_are_not_retried(self, processor):
        processor.process_deposit("sig-done", ALICE, PaymentToken.usdc, 10, now=NOW)

        assert processor.retry_pending_deposits(NOW + timedelta(hours=1)) == []


class TestDepositQueries:
    def test_preview_uses_account_tier_bonus(self, processor):
        preview = processor.preview_credits(PaymentToken.ghost, 1000, ALICE)

        assert preview.credits == 12000
        assert AccountStore.get(ALICE) is None

    def test_get_deposits_newest_first(self, processor):
        processor.process_deposit("sig-old", ALICE, PaymentToken.usdc, 1, now=NOW - timedelta(days=2))
        processor.process_deposit("sig-new", ALICE, PaymentToken.usdc, 2, now=NOW)

        deposits = processor.get_deposits(ALICE)

        assert [deposit.id for deposit in deposits] == ["sig-new", "sig-old"]
        assert [deposit.id for deposit in processor.get_deposits(ALICE, since=NOW - timedelta(days=1))] == ["sig-new"]
