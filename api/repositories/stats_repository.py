"""Repository for service statistics aggregates.

All queries are read-only and scan current data; nothing here is cached.
Steps without a service (category templates) never participate.
"""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Service, Step, StepStatus
from repositories.utils import log_slow_query


class ServiceStatsRepository:
    """Read-only aggregate queries over services and their steps."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def count_services(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(Service))
        return result.scalar_one() or 0

    async def count_services_created_between(
        self, start: datetime, end: datetime
    ) -> int:
        """Services with start <= created_at <= end."""
        result = await self.db.execute(
            select(func.count())
            .select_from(Service)
            .where(Service.created_at >= start, Service.created_at <= end)
        )
        return result.scalar_one() or 0

    @log_slow_query("latest_step_status_counts")
    async def get_latest_step_status_counts(self) -> dict[str, int]:
        """Count services by the status of their most recently updated step.

        Ties on updated_at go to the highest step id, so every service with
        at least one step is counted exactly once.

        Returns:
            Mapping of raw step status value -> number of services.
        """
        ranked = (
            select(
                Step.service_id.label("service_id"),
                Step.status.label("status"),
                func.row_number()
                .over(
                    partition_by=Step.service_id,
                    order_by=(Step.updated_at.desc(), Step.id.desc()),
                )
                .label("rn"),
            )
            .where(Step.service_id.is_not(None))
            .subquery()
        )
        result = await self.db.execute(
            select(ranked.c.status, func.count())
            .where(ranked.c.rn == 1)
            .group_by(ranked.c.status)
        )
        return {_status_value(status): count for status, count in result.all()}

    async def get_service_status_counts(self) -> dict[str, int]:
        """Count services by their own status column."""
        result = await self.db.execute(
            select(Service.status, func.count()).group_by(Service.status)
        )
        return {_status_value(status): count for status, count in result.all()}

    @log_slow_query("count_overdue_services")
    async def count_overdue_services(self, now: datetime) -> int:
        """Distinct services with a past-deadline step that is not concluded.

        Cancelled steps past their deadline still count.
        """
        result = await self.db.execute(
            select(func.count(Step.service_id.distinct())).where(
                Step.service_id.is_not(None),
                Step.datetime_expiration.is_not(None),
                Step.datetime_expiration < now,
                Step.status != StepStatus.CONCLUDED,
            )
        )
        return result.scalar_one() or 0


def _status_value(status: object) -> str:
    return status.value if hasattr(status, "value") else str(status)
