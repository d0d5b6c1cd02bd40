"""Step repository for database operations."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models import Service, Step, StepStatus


def _detail_load_options() -> list:
    return [
        selectinload(Step.service).selectinload(Service.client),
        selectinload(Step.category),
        selectinload(Step.responsable),
        selectinload(Step.images),
    ]


class StepRepository:
    """Repository for Step database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, step_id: int) -> Step | None:
        """Step with service (+client), category, responsible user and images."""
        result = await self.db.execute(
            select(Step)
            .where(Step.id == step_id)
            .options(*_detail_load_options())
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_responsable(
        self,
        user_id: int,
        *,
        created_between: tuple[datetime, datetime] | None = None,
        expires_between: tuple[datetime, datetime] | None = None,
    ) -> list[Step]:
        """Steps assigned to a user, newest first.

        Windows are half-open: start <= value < end.
        """
        stmt = select(Step).where(Step.responsable_id == user_id)
        if created_between is not None:
            start, end = created_between
            stmt = stmt.where(Step.created_at >= start, Step.created_at < end)
        if expires_between is not None:
            start, end = expires_between
            stmt = stmt.where(
                Step.datetime_expiration >= start, Step.datetime_expiration < end
            )
        result = await self.db.execute(
            stmt.options(*_detail_load_options())
            .order_by(Step.created_at.desc(), Step.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_statuses_for_service(self, service_id: int) -> list[StepStatus]:
        result = await self.db.execute(
            select(Step.status).where(Step.service_id == service_id)
        )
        return list(result.scalars().all())

    async def save(self, step: Step) -> Step:
        """Flush pending changes on a step (assigns ids, bumps updated_at)."""
        self.db.add(step)
        await self.db.flush()
        return step
