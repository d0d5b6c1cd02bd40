"""Repository for monthly dashboard snapshots."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import DashboardStats
from repositories.utils import upsert_on_conflict

SNAPSHOT_FIELDS = (
    "clients_total",
    "clients_new_this_month",
    "services_total",
    "services_pending",
    "services_in_progress",
    "services_completed",
    "services_cancelled",
    "services_overdue",
    "services_this_week",
    "services_this_month",
)


class DashboardStatsRepository:
    """Snapshots keyed by (year, month). Rows are never deleted."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, year: int, month: int) -> DashboardStats | None:
        result = await self.db.execute(
            select(DashboardStats)
            .where(DashboardStats.year == year, DashboardStats.month == month)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> list[DashboardStats]:
        """Every snapshot, most recent month first."""
        result = await self.db.execute(
            select(DashboardStats).order_by(
                DashboardStats.year.desc(), DashboardStats.month.desc()
            )
        )
        return list(result.scalars().all())

    async def upsert(self, year: int, month: int, counts: dict[str, Any]) -> None:
        """Insert or overwrite the snapshot for (year, month).

        Does NOT commit. Caller owns the transaction.
        """
        now = datetime.now(UTC)
        values = {
            "year": year,
            "month": month,
            **{field: counts[field] for field in SNAPSHOT_FIELDS},
            "created_at": now,
            "updated_at": now,
        }
        await upsert_on_conflict(
            self.db,
            DashboardStats,
            values,
            index_elements=["year", "month"],
            update_fields=[*SNAPSHOT_FIELDS, "updated_at"],
        )
