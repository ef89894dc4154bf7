from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, Float, TIMESTAMP, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func

from src.models.base import Base

if TYPE_CHECKING:
    from src.models.account import Account


class UsageRecord(Base):
    """Append-only audit entry of a consumed gated operation."""

    __tablename__ = "usage_records"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_address: Mapped[str] = mapped_column(
        String, ForeignKey("accounts.address", ondelete="CASCADE"), nullable=False
    )
    endpoint: Mapped[str] = mapped_column(String, nullable=False)
    method: Mapped[str] = mapped_column(String, nullable=False)
    credits_consumed: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=func.current_timestamp(), index=True)

    account: Mapped["Account"] = relationship("Account", back_populates="usage_records")

    __table_args__ = (CheckConstraint("credits_consumed >= 0", name="check_credits_consumed_non_negative"),)

    def __init__(
        self,
        account_address: str,
        endpoint: str,
        method: str,
        credits_consumed: float,
        created_at: datetime | None = None,
    ):
        self.account_address = account_address
        self.endpoint = endpoint
        self.method = method
        self.credits_consumed = credits_consumed
        if created_at is not None:
            self.created_at = created_at
