import random
import time
from datetime import datetime, timedelta
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from src.config import config
from src.interfaces.errors import AccountUpdateConflictError
from src.models.account import Account
from src.models.base import SessionLocal
from src.tiers import DEFAULT_TIER
from src.utils.general import get_current_time
from src.utils.logger import setup_logger
from src.utils.windows import window_end_after

logger = setup_logger(__name__)

T = TypeVar("T")

QUOTA_WINDOW = timedelta(hours=config.QUOTA_WINDOW_HOURS)
FREE_CREDITS_WINDOW = timedelta(days=config.FREE_CREDITS_WINDOW_DAYS)


class AccountStore:
    """
    Keyed storage of accounts with an atomic per-account update primitive.

    Updates are optimistic: the row is read, modified in memory and written back with a condition on its
    version column. A concurrent writer makes the flush raise StaleDataError, in which case the whole unit of
    work is rolled back and replayed on a fresh read.
    """

    @staticmethod
    def new_account(address: str, now: datetime) -> Account:
        """Build (without persisting) the state of an account seen for the first time."""
        account = Account(address=address, tier=DEFAULT_TIER.name, free_credits=DEFAULT_TIER.monthly_free_credits)
        account.free_credits_reset_at = now + FREE_CREDITS_WINDOW
        account.quota_reset_at = window_end_after(now, QUOTA_WINDOW)
        return account

    @staticmethod
    def get(address: str) -> Account | None:
        with SessionLocal() as db:
            return db.get(Account, address)

    @staticmethod
    def get_or_default(address: str, now: datetime | None = None) -> Account:
        """Stored account, or the transient state a new one would start with."""
        account = AccountStore.get(address)
        if account is None:
            account = AccountStore.new_account(address, now or get_current_time())
        return account

    @staticmethod
    def load(db: Session, address: str, now: datetime) -> Account:
        """Load an account inside a unit of work, lazily creating it."""
        account = db.get(Account, address)
        if account is None:
            account = AccountStore.new_account(address, now)
            db.add(account)
        return account

    @staticmethod
    def ensure_exists(address: str, now: datetime | None = None) -> None:
        if AccountStore.get(address) is not None:
            return
        AccountStore.update(address, lambda _account: (None, True), now=now)

    @staticmethod
    def update(
        address: str,
        mutate: Callable[[Account], tuple[T, bool]],
        now: datetime | None = None,
    ) -> T:
        """
        Apply `mutate` to an account atomically.

        Args:
            address: Account address, the account is created if it doesn't exist yet
            mutate: Function modifying the account in memory and returning (result, should_commit).
                    When should_commit is False, every change is discarded.
            now: Time used for lazy creation

        Returns:
            The result returned by `mutate` on the attempt that went through
        """
        now = now or get_current_time()

        for attempt in range(1, config.ACCOUNT_UPDATE_MAX_RETRIES + 1):
            with SessionLocal() as db:
                created = False
                try:
                    account = AccountStore.load(db, address, now)
                    created = account in db.new
                    result, should_commit = mutate(account)
                    if should_commit:
                        db.commit()
                    else:
                        db.rollback()
                    return result
                except StaleDataError as e:
                    # Another writer updated the account first, replay on fresh data
                    db.rollback()
                    logger.debug(f"Conflict updating account {address} (attempt {attempt}): {str(e)}")
                except IntegrityError as e:
                    db.rollback()
                    if not created or db.get(Account, address) is None:
                        logger.error(f"Constraint violated updating account {address}: {str(e)}", exc_info=True)
                        raise
                    # Another writer created the account first
                    logger.debug(f"Account {address} created concurrently (attempt {attempt}): {str(e)}")
                except Exception as e:
                    db.rollback()
                    logger.error(f"Error updating account {address}: {str(e)}", exc_info=True)
                    raise
            time.sleep(random.uniform(0, 0.005 * attempt))

        logger.error(f"Giving up updating account {address} after {config.ACCOUNT_UPDATE_MAX_RETRIES} attempts")
        raise AccountUpdateConflictError(address, config.ACCOUNT_UPDATE_MAX_RETRIES)
