from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, Float, Integer, TIMESTAMP, CheckConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func

from src.models.base import Base

if TYPE_CHECKING:
    from src.models.deposit import Deposit
    from src.models.usage_record import UsageRecord


class Account(Base):
    __tablename__ = "accounts"

    def __repr__(self):
        attrs = [f"{column.name}={getattr(self, column.name)!r}" for column in self.__table__.columns]
        return f"{self.__class__.__name__}({', '.join(attrs)})"

    address: Mapped[str] = mapped_column(String, primary_key=True)  # Solana wallet address
    tier: Mapped[str] = mapped_column(String, nullable=False, default="free")  # Manually assigned tier
    cached_tier: Mapped[str | None] = mapped_column(String, nullable=True)  # Tier derived from holdings
    last_tier_check: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    tier_check_failed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)  # Last failed lookup

    free_credits: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    paid_credits: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    lifetime_credits_purchased: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    free_credits_reset_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    quota_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quota_reset_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    rate_window_start: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    rate_window_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=func.current_timestamp())
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, default=func.current_timestamp(), onupdate=func.current_timestamp()
    )

    deposits: Mapped[list["Deposit"]] = relationship("Deposit", back_populates="account")
    usage_records: Mapped[list["UsageRecord"]] = relationship("UsageRecord", back_populates="account")

    # Concurrent writers conflict on the version column instead of overwriting each other
    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("free_credits >= 0", name="check_free_credits_non_negative"),
        CheckConstraint("paid_credits >= 0", name="check_paid_credits_non_negative"),
        CheckConstraint("quota_used >= 0", name="check_quota_used_non_negative"),
    )

    def __init__(self, address: str, tier: str = "free", free_credits: float = 0, paid_credits: float = 0):
        self.address = address
        self.tier = tier
        self.free_credits = free_credits
        self.paid_credits = paid_credits
        self.lifetime_credits_purchased = 0
        self.quota_used = 0
        self.rate_window_count = 0

    @property
    def total_credits(self) -> float:
        return self.free_credits + self.paid_credits
