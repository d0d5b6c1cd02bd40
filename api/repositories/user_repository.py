"""User repository for database operations."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import User


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: int) -> User | None:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def exists(self, user_id: int) -> bool:
        result = await self.db.execute(select(User.id).where(User.id == user_id))
        return result.scalar_one_or_none() is not None

    async def get_existing_ids(self, user_ids: set[int]) -> set[int]:
        """Return the subset of user_ids that exist (one query for a batch)."""
        if not user_ids:
            return set()
        result = await self.db.execute(select(User.id).where(User.id.in_(user_ids)))
        return set(result.scalars().all())
