"""
Shared fixtures of the credits test suite.

The environment is configured before anything from `src` is imported, so the engine binds to a throwaway SQLite
file and the secrets used by the routes are known.
"""

import os
import tempfile
from datetime import datetime

_TEST_DIR = tempfile.mkdtemp(prefix="ghostspeak-credits-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'credits.db')}"
os.environ["ADMIN_SECRET"] = "test-admin-secret"
os.environ["DEPOSIT_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["ACCOUNT_UPDATE_MAX_RETRIES"] = "25"
os.environ.pop("TIER_CONFIG", None)

import pytest  # noqa: E402

from src.interfaces.credits import PaymentToken, STABLE_TOKENS  # noqa: E402
from src.interfaces.errors import ExternalLookupTimeoutError, PricingUnavailableError  # noqa: E402
from src.models import Base  # noqa: E402
from src.models.base import engine  # noqa: E402
from src.services.account import AccountStore  # noqa: E402
from src.services.deposit import DepositProcessor  # noqa: E402
from src.services.quota import QuotaEnforcer  # noqa: E402
from src.services.tier import TierResolver  # noqa: E402
from src.services.usage import UsageRecorder  # noqa: E402

# Valid base58 public keys
ALICE = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
BOB = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
CAROL = "So11111111111111111111111111111111111111112"

# Mid-afternoon, so the daily window ends at the next midnight
NOW = datetime(2026, 3, 10, 15, 0, 0)


class FakePricing:
    """In-memory price source, switchable to an outage."""

    def __init__(self, prices: dict[PaymentToken, float] | None = None):
        self.prices = prices or {PaymentToken.sol: 150.0, PaymentToken.ghost: 0.01}
        self.unavailable = False
        self.calls = 0

    def usd_price(self, token: PaymentToken, now: datetime | None = None) -> float:
        if token in STABLE_TOKENS:
            return 1.0
        self.calls += 1
        if self.unavailable:
            raise PricingUnavailableError(token.value, "price API down")
        return self.prices[token]


class FakeHoldings:
    """In-memory reward token balances, switchable to an outage."""

    def __init__(self):
        self.balances: dict[str, float] = {}
        self.unavailable = False
        self.calls = 0

    def token_balance(self, address: str) -> float:
        self.calls += 1
        if self.unavailable:
            raise ExternalLookupTimeoutError(address, "RPC timed out")
        return self.balances.get(address, 0.0)


def set_account(address: str, now: datetime = NOW, **fields) -> None:
    """Create the account if needed and overwrite some of its columns."""

    def _set(account):
        for name, value in fields.items():
            setattr(account, name, value)
        return None, True

    AccountStore.update(address, _set, now=now)


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture
def pricing() -> FakePricing:
    return FakePricing()


@pytest.fixture
def holdings() -> FakeHoldings:
    return FakeHoldings()


@pytest.fixture
def resolver(holdings, pricing) -> TierResolver:
    return TierResolver(holdings=holdings, pricing=pricing)


@pytest.fixture
def enforcer(resolver) -> QuotaEnforcer:
    return QuotaEnforcer(resolver=resolver)


@pytest.fixture
def processor(pricing) -> DepositProcessor:
    return DepositProcessor(pricing=pricing)


@pytest.fixture
def recorder() -> UsageRecorder:
    return UsageRecorder()
