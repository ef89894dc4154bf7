from datetime import datetime

from sqlalchemy import func, select

from src.interfaces.usage import DailyUsage, UsageCall, UsageSummary
from src.models.base import SessionLocal
from src.models.usage_record import UsageRecord
from src.utils.general import get_current_time
from src.utils.logger import setup_logger

logger = setup_logger(__name__)


class UsageRecorder:
    """Append-only log of the gated operations that went through."""

    @staticmethod
    def record(
        address: str, endpoint: str, method: str, credits_consumed: float, now: datetime | None = None
    ) -> bool:
        """
        Append a usage entry. Failures are logged and never raised: the gated operation already succeeded.

        Returns:
            Boolean indicating if the entry was stored
        """
        try:
            with SessionLocal() as db:
                db.add(
                    UsageRecord(
                        account_address=address,
                        endpoint=endpoint,
                        method=method.upper(),
                        credits_consumed=credits_consumed,
                        created_at=now or get_current_time(),
                    )
                )
                db.commit()
                return True
        except Exception as e:
            logger.error(f"Error recording usage of {endpoint} for {address}: {str(e)}", exc_info=True)
            return False

    @staticmethod
    def get_records(
        address: str, start: datetime | None = None, end: datetime | None = None, limit: int = 100
    ) -> list[UsageCall]:
        """
        Get the usage entries of an account, newest first.

        Args:
            address: Account address
            start: Inclusive lower bound of the time range
            end: Exclusive upper bound of the time range
            limit: Maximum number of entries returned
        """
        with SessionLocal() as db:
            query = select(UsageRecord).where(UsageRecord.account_address == address)
            if start is not None:
                query = query.where(UsageRecord.created_at >= start)
            if end is not None:
                query = query.where(UsageRecord.created_at < end)
            records = db.scalars(query.order_by(UsageRecord.created_at.desc(), UsageRecord.id.desc()).limit(limit))

            return [
                UsageCall(
                    endpoint=record.endpoint,
                    method=record.method,
                    credits=record.credits_consumed,
                    timestamp=record.created_at,
                )
                for record in records
            ]

    @staticmethod
    def get_summary(
        address: str, start: datetime | None = None, end: datetime | None = None
    ) -> tuple[UsageSummary, list[DailyUsage]]:
        """Totals over a time range, with a per-day breakdown sorted from the most recent day."""
        with SessionLocal() as db:
            filters = [UsageRecord.account_address == address]
            if start is not None:
                filters.append(UsageRecord.created_at >= start)
            if end is not None:
                filters.append(UsageRecord.created_at < end)

            total_calls, total_credits = db.execute(
                select(func.count(UsageRecord.id), func.coalesce(func.sum(UsageRecord.credits_consumed), 0.0)).where(
                    *filters
                )
            ).one()

            timestamps = db.execute(
                select(UsageRecord.created_at, UsageRecord.credits_consumed).where(*filters)
            ).all()

        daily: dict[str, DailyUsage] = {}
        for created_at, credits in timestamps:
            day = created_at.date().isoformat()
            entry = daily.setdefault(day, DailyUsage(date=day, credits=0, calls=0))
            entry.credits += credits
            entry.calls += 1

        summary = UsageSummary(total_api_calls=total_calls, total_credits_spent=float(total_credits))
        return summary, sorted(daily.values(), key=lambda entry: entry.date, reverse=True)


usage_recorder = UsageRecorder()
