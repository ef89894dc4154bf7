from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, Float, Integer, TIMESTAMP, ForeignKey, CheckConstraint, Enum
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func

from src.interfaces.credits import DepositStatus, PaymentToken
from src.models.base import Base

if TYPE_CHECKING:
    from src.models.account import Account


class Deposit(Base):
    __tablename__ = "deposits"

    id: Mapped[str] = mapped_column(String, primary_key=True)  # Deduplication key, the on-chain signature
    account_address: Mapped[str] = mapped_column(
        String, ForeignKey("accounts.address", ondelete="CASCADE"), nullable=False, index=True
    )
    token: Mapped[PaymentToken] = mapped_column(Enum(PaymentToken), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    usd_value_at_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    credits_granted: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bonus_applied: Mapped[float | None] = mapped_column(Float, nullable=True)  # Bonus percent applied
    status: Mapped[DepositStatus] = mapped_column(
        Enum(DepositStatus), nullable=False, default=DepositStatus.pending, index=True
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_attempt_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    last_error: Mapped[str | None] = mapped_column(String, nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=func.current_timestamp())
    credited_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    account: Mapped["Account"] = relationship("Account", back_populates="deposits")

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_deposit_amount_positive"),
        CheckConstraint("credits_granted IS NULL OR credits_granted >= 0", name="check_credits_granted_non_negative"),
        CheckConstraint(
            "status != 'credited' OR credits_granted IS NOT NULL", name="check_credited_deposit_has_credits"
        ),
    )

    def __init__(
        self,
        id: str,
        account_address: str,
        token: PaymentToken,
        amount: float,
        confirmed_at: datetime | None = None,
        status: DepositStatus = DepositStatus.pending,
        created_at: datetime | None = None,
    ):
        self.id = id
        self.account_address = account_address
        self.token = token
        self.amount = amount
        self.confirmed_at = confirmed_at
        self.status = status
        self.attempts = 0
        if created_at is not None:
            self.created_at = created_at
