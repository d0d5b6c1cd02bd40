"""Image repository for database operations."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Image


class ImageRepository:
    """Repository for step Image rows. Files are handled by services.image_storage."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, step_id: int, path: str) -> Image:
        image = Image(step_id=step_id, path=path)
        self.db.add(image)
        await self.db.flush()
        return image

    async def list_for_step(self, step_id: int) -> list[Image]:
        """Images of a step, newest first."""
        result = await self.db.execute(
            select(Image)
            .where(Image.step_id == step_id)
            .order_by(Image.created_at.desc(), Image.id.desc())
        )
        return list(result.scalars().all())

    async def get_for_step(self, image_id: int, step_id: int) -> Image | None:
        """Image only if it belongs to the given step."""
        result = await self.db.execute(
            select(Image).where(Image.id == image_id, Image.step_id == step_id)
        )
        return result.scalar_one_or_none()

    async def delete(self, image: Image) -> None:
        await self.db.delete(image)
        await self.db.flush()
