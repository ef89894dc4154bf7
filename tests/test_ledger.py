"""Tests for the account ledger: balances, consumption order and atomic deduction."""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from src.interfaces.credits import CreditKind, LedgerResult
from src.models.account import Account
from src.services.account import AccountStore
from src.services.ledger import AccountLedger
from src.tiers import DEFAULT_TIER
from tests.conftest import ALICE, BOB, NOW, set_account


class TestConsume:
    """Tests for in-memory consumption on a loaded account."""

    def test_free_credits_are_used_first(self):
        account = Account(address=ALICE, free_credits=3, paid_credits=10)

        assert AccountLedger.consume(account, 5) == LedgerResult.consumed
        assert account.free_credits == 0
        assert account.paid_credits == 8

    def test_insufficient_leaves_account_unchanged(self):
        account = Account(address=ALICE, free_credits=1, paid_credits=1)

        assert AccountLedger.consume(account, 3) == LedgerResult.insufficient_credits
        assert account.free_credits == 1
        assert account.paid_credits == 1

    def test_zero_cost_is_always_consumed(self):
        account = Account(address=ALICE)

        assert AccountLedger.consume(account, 0) == LedgerResult.consumed

    def test_negative_cost_rejected(self):
        with pytest.raises(ValueError):
            AccountLedger.consume(Account(address=ALICE, free_credits=5), -1)


class TestBalance:
    def test_unknown_account_shows_defaults_without_creating_it(self):
        balance = AccountLedger.get_balance(ALICE, NOW)

        assert balance.tier == DEFAULT_TIER.name
        assert balance.free_credits == DEFAULT_TIER.monthly_free_credits
        assert balance.paid_credits == 0
        assert AccountStore.get(ALICE) is None

    def test_total_is_free_plus_paid(self):
        set_account(ALICE, free_credits=7, paid_credits=25)

        balance = AccountLedger.get_balance(ALICE, NOW)

        assert balance.total_credits == 32

    def test_due_refill_is_shown(self):
        set_account(ALICE, free_credits=2, free_credits_reset_at=NOW - timedelta(days=1))

        balance = AccountLedger.get_balance(ALICE, NOW)

        assert balance.free_credits == DEFAULT_TIER.monthly_free_credits
        # Not persisted by a read
        assert AccountStore.get(ALICE).free_credits == 2


class TestReserveAndConsume:
    def test_sixth_call_on_five_free_credits_is_rejected(self):
        set_account(ALICE, free_credits=5, paid_credits=0)

        results = [AccountLedger.reserve_and_consume(ALICE, 1, NOW) for _ in range(6)]

        assert results[:5] == [LedgerResult.consumed] * 5
        assert results[5] == LedgerResult.insufficient_credits
        assert AccountStore.get(ALICE).free_credits == 0

    def test_spills_over_to_paid_credits(self):
        set_account(ALICE, free_credits=2, paid_credits=10)

        assert AccountLedger.reserve_and_consume(ALICE, 5, NOW) == LedgerResult.consumed

        account = AccountStore.get(ALICE)
        assert account.free_credits == 0
        assert account.paid_credits == 7

    def test_refills_free_credits_when_window_is_over(self):
        set_account(ALICE, free_credits=0, paid_credits=0, free_credits_reset_at=NOW - timedelta(hours=1))

        assert AccountLedger.reserve_and_consume(ALICE, 1, NOW) == LedgerResult.consumed

        account = AccountStore.get(ALICE)
        assert account.free_credits == DEFAULT_TIER.monthly_free_credits - 1
        assert account.free_credits_reset_at > NOW

    def test_new_account_starts_with_monthly_free_credits(self):
        assert AccountLedger.reserve_and_consume(BOB, 1, NOW) == LedgerResult.consumed
        assert AccountStore.get(BOB).free_credits == DEFAULT_TIER.monthly_free_credits - 1

    def test_concurrent_consumers_never_overdraw(self):
        set_account(ALICE, free_credits=0, paid_credits=5)

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(lambda _: AccountLedger.reserve_and_consume(ALICE, 1, NOW), range(8)))

        assert results.count(LedgerResult.consumed) == 5
        assert results.count(LedgerResult.insufficient_credits) == 3
        account = AccountStore.get(ALICE)
        assert account.paid_credits == 0
        assert account.free_credits == 0


class TestCredit:
    def test_paid_credit_counts_as_purchase(self):
        set_account(ALICE, free_credits=0, paid_credits=0)

        balance = AccountLedger.credit(ALICE, 500, CreditKind.paid, NOW)

        assert balance.paid_credits == 500
        assert AccountStore.get(ALICE).lifetime_credits_purchased == 500

    def test_free_credit_does_not_count_as_purchase(self):
        set_account(ALICE, free_credits=0)

        balance = AccountLedger.credit(ALICE, 50, CreditKind.free, NOW)

        assert balance.free_credits == 50
        assert AccountStore.get(ALICE).lifetime_credits_purchased == 0

    def test_negative_credit_rejected(self):
        with pytest.raises(ValueError):
            AccountLedger.credit(ALICE, -1, CreditKind.paid, NOW)
        assert AccountStore.get(ALICE) is None
