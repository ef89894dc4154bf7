import math
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from src.config import config
from src.interfaces.credits import (
    CreditComputation,
    CreditKind,
    DepositProcessingStatus,
    DepositResponse,
    DepositResult,
    DepositStatus,
    PaymentToken,
    REWARD_TOKEN,
)
from src.interfaces.errors import AccountUpdateConflictError, PricingUnavailableError
from src.models.base import SessionLocal
from src.models.deposit import Deposit
from src.providers.pricing import PricingProvider, pricing_provider
from src.services.account import AccountStore
from src.services.ledger import AccountLedger
from src.tiers import highest_tier
from src.utils.general import get_current_time
from src.utils.logger import setup_logger

logger = setup_logger(__name__)


def compute_credits(
    token: PaymentToken,
    amount: float,
    usd_price: float,
    bonus_percent: float,
    price_per_thousand_credits: float = config.PRICE_PER_THOUSAND_CREDITS,
) -> CreditComputation:
    """
    Convert a token amount into credits.

    Decimal arithmetic keeps the conversion exact for decimal inputs, e.g. 1000 tokens at $0.01 with a 20%
    bonus and $1 per thousand credits gives exactly 12000 credits.
    """
    applied_bonus = Decimal(str(bonus_percent)) if token == REWARD_TOKEN else Decimal(0)
    usd_value = Decimal(str(amount)) * Decimal(str(usd_price))
    base_credits = usd_value / Decimal(str(price_per_thousand_credits)) * 1000
    credits = math.floor(base_credits * (1 + applied_bonus / 100))

    return CreditComputation(
        token=token,
        amount=amount,
        usd_price=usd_price,
        usd_value=float(usd_value),
        base_credits=float(base_credits),
        bonus_percent=float(applied_bonus),
        credits=credits,
    )


class DepositProcessor:
    def __init__(self, pricing: PricingProvider = pricing_provider):
        self.pricing = pricing

    def process_deposit(
        self,
        deposit_id: str,
        address: str,
        token: PaymentToken,
        amount: float,
        confirmed_at: datetime | None = None,
        now: datetime | None = None,
    ) -> DepositResult:
        """
        Credit an account for a confirmed external payment, at most once per deposit id.

        Args:
            deposit_id: Idempotency key of the payment (the transaction signature)
            address: Account to credit
            token: Token used for the payment
            amount: Amount of tokens paid
            confirmed_at: Time the payment was confirmed by the watcher
            now: Current time

        Returns:
            DepositResult with the credited amount, or the reason nothing was credited
        """
        if amount <= 0:
            raise ValueError(f"Deposit amount must be positive, got {amount}")

        now = now or get_current_time()
        logger.debug(f"Processing deposit {deposit_id}: {amount} {token.value} for {address}")

        deposit = self._get_or_create_pending(deposit_id, address, token, amount, confirmed_at, now)
        if deposit.status == DepositStatus.credited:
            logger.warning(f"Deposit {deposit_id} already processed, skipping")
            return self._already_processed(deposit)

        # Price is fetched before entering the transaction that credits the account
        try:
            usd_price = self.pricing.usd_price(deposit.token, now)
        except PricingUnavailableError as e:
            self._schedule_retry(deposit_id, str(e), now)
            return DepositResult(
                deposit_id=deposit_id,
                status=DepositProcessingStatus.pricing_unavailable,
                message="Token price is currently unavailable, the deposit will be credited later",
            )

        account = AccountStore.get_or_default(deposit.account_address, now)
        tier = highest_tier(account.tier, account.cached_tier)
        computation = compute_credits(deposit.token, deposit.amount, usd_price, tier.bonus_percent_for_reward_token)

        return self._credit(deposit, computation, now)

    def _get_or_create_pending(
        self,
        deposit_id: str,
        address: str,
        token: PaymentToken,
        amount: float,
        confirmed_at: datetime | None,
        now: datetime,
    ) -> Deposit:
        AccountStore.ensure_exists(address, now)

        with SessionLocal() as db:
            deposit = db.get(Deposit, deposit_id)
            if deposit is not None:
                if deposit.account_address != address or deposit.token != token or deposit.amount != amount:
                    logger.warning(
                        f"Deposit {deposit_id} replayed with different data ({address}, {amount} {token.value}), "
                        f"keeping stored values ({deposit.account_address}, {deposit.amount} {deposit.token.value})"
                    )
                return deposit

            deposit = Deposit(
                id=deposit_id,
                account_address=address,
                token=token,
                amount=amount,
                confirmed_at=confirmed_at,
                created_at=now,
            )
            db.add(deposit)
            try:
                db.commit()
                return deposit
            except IntegrityError:
                # Same deposit delivered concurrently, the other delivery inserted it first
                db.rollback()

        with SessionLocal() as db:
            stored = db.get(Deposit, deposit_id)
            if stored is None:
                raise RuntimeError(f"Deposit {deposit_id} could neither be inserted nor read")
            return stored

    def _credit(self, deposit: Deposit, computation: CreditComputation, now: datetime) -> DepositResult:
        for _ in range(config.ACCOUNT_UPDATE_MAX_RETRIES):
            with SessionLocal() as db:
                try:
                    # Compare-and-set on the status, the only guard against duplicated deliveries
                    result = db.execute(
                        update(Deposit)
                        .where(Deposit.id == deposit.id, Deposit.status == DepositStatus.pending)
                        .values(
                            status=DepositStatus.credited,
                            usd_value_at_time=computation.usd_value,
                            credits_granted=computation.credits,
                            bonus_applied=computation.bonus_percent,
                            credited_at=now,
                            next_attempt_at=None,
                            last_error=None,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        db.rollback()
                        logger.warning(f"Deposit {deposit.id} already processed, skipping")
                        return self._already_processed(deposit)

                    account = AccountStore.load(db, deposit.account_address, now)
                    AccountLedger.apply_credit(account, computation.credits, CreditKind.paid)
                    db.commit()
                except StaleDataError:
                    # Account changed concurrently, the deposit status update is rolled back with it
                    db.rollback()
                    continue
                except Exception as e:
                    db.rollback()
                    logger.error(f"Error crediting deposit {deposit.id}: {str(e)}", exc_info=True)
                    raise

            logger.info(
                f"Credited {computation.credits} credits to {deposit.account_address} for deposit {deposit.id} "
                f"({deposit.amount} {deposit.token.value} worth ${computation.usd_value:.2f}, "
                f"bonus {computation.bonus_percent}%)"
            )
            return DepositResult(
                deposit_id=deposit.id,
                status=DepositProcessingStatus.credited,
                credits_granted=computation.credits,
                usd_value=computation.usd_value,
                bonus_applied=computation.bonus_percent,
            )

        raise AccountUpdateConflictError(deposit.account_address, config.ACCOUNT_UPDATE_MAX_RETRIES)

    @staticmethod
    def _already_processed(deposit: Deposit) -> DepositResult:
        return DepositResult(
            deposit_id=deposit.id,
            status=DepositProcessingStatus.already_processed,
            credits_granted=0,
            message="Deposit already credited",
        )

    @staticmethod
    def _schedule_retry(deposit_id: str, error: str, now: datetime) -> None:
        """Keep the deposit pending and push its next attempt with an exponential backoff."""
        with SessionLocal() as db:
            deposit = db.get(Deposit, deposit_id)
            if deposit is None or deposit.status != DepositStatus.pending:
                return
            deposit.attempts += 1
            delay = min(
                config.DEPOSIT_RETRY_BASE_SECONDS * 2 ** (deposit.attempts - 1), config.DEPOSIT_RETRY_MAX_SECONDS
            )
            deposit.next_attempt_at = now + timedelta(seconds=delay)
            deposit.last_error = error
            db.commit()
            logger.warning(
                f"Deposit {deposit_id} left pending (attempt {deposit.attempts}), retrying in {delay}s: {error}"
            )

    def retry_pending_deposits(self, now: datetime | None = None) -> list[DepositResult]:
        """Process again the pending deposits whose backoff delay is over."""
        now = now or get_current_time()
        with SessionLocal() as db:
            due_deposits = db.scalars(
                select(Deposit)
                .where(
                    Deposit.status == DepositStatus.pending,
                    or_(Deposit.next_attempt_at.is_(None), Deposit.next_attempt_at <= now),
                )
                .order_by(Deposit.created_at.asc())
            ).all()

        results: list[DepositResult] = []
        for deposit in due_deposits:
            try:
                results.append(
                    self.process_deposit(
                        deposit.id, deposit.account_address, deposit.token, deposit.amount, deposit.confirmed_at, now
                    )
                )
            except Exception as e:
                logger.error(f"Error retrying deposit {deposit.id}: {str(e)}", exc_info=True)
        return results

    def preview_credits(self, token: PaymentToken, amount: float, address: str | None = None) -> CreditComputation:
        """Expected credits for a deposit, at the current price and the tier of `address` if given."""
        if amount <= 0:
            raise ValueError(f"Deposit amount must be positive, got {amount}")
        if address is not None:
            account = AccountStore.get_or_default(address)
            tier = highest_tier(account.tier, account.cached_tier)
        else:
            tier = highest_tier(None)
        return compute_credits(token, amount, self.pricing.usd_price(token), tier.bonus_percent_for_reward_token)

    @staticmethod
    def get_deposits(address: str, since: datetime | None = None, limit: int = 100) -> list[DepositResponse]:
        with SessionLocal() as db:
            query = select(Deposit).where(Deposit.account_address == address)
            if since is not None:
                query = query.where(Deposit.created_at >= since)
            deposits = db.scalars(query.order_by(Deposit.created_at.desc()).limit(limit)).all()

        return [
            DepositResponse(
                id=deposit.id,
                token=deposit.token,
                amount=deposit.amount,
                usd_value_at_time=deposit.usd_value_at_time,
                credits_granted=deposit.credits_granted,
                bonus_applied=deposit.bonus_applied,
                status=deposit.status,
                created_at=deposit.created_at,
                credited_at=deposit.credited_at,
            )
            for deposit in deposits
        ]


deposit_processor = DepositProcessor()
