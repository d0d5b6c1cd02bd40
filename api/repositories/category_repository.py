"""Category repository for database operations."""

from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models import Category, Step


class CategoryRepository:
    """Categories and their template steps (steps with no service)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, category_id: int) -> Category | None:
        result = await self.db.execute(
            select(Category)
            .where(Category.id == category_id)
            .options(selectinload(Category.steps))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def exists(self, category_id: int) -> bool:
        result = await self.db.execute(
            select(Category.id).where(Category.id == category_id)
        )
        return result.scalar_one_or_none() is not None

    async def list_all(self) -> list[Category]:
        """All categories with template steps, newest first."""
        result = await self.db.execute(
            select(Category)
            .options(selectinload(Category.steps))
            .order_by(Category.created_at.desc(), Category.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def create(self, name: str, description: str | None) -> Category:
        category = Category(name=name, description=description)
        self.db.add(category)
        await self.db.flush()
        return category

    async def update(self, category: Category, **fields: Any) -> Category:
        for key, value in fields.items():
            setattr(category, key, value)
        await self.db.flush()
        return category

    async def add_template_steps(
        self, category_id: int, templates: list[dict[str, Any]]
    ) -> None:
        for template in templates:
            self.db.add(Step(category_id=category_id, service_id=None, **template))
        await self.db.flush()

    async def delete_template_steps(self, category_id: int) -> None:
        await self.db.execute(
            delete(Step).where(
                Step.category_id == category_id, Step.service_id.is_(None)
            )
        )

    async def delete(self, category: Category) -> None:
        """Delete a category and its template steps."""
        await self.delete_template_steps(category.id)
        await self.db.delete(category)
        await self.db.flush()
