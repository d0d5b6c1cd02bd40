"""Service categories and their template steps."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from core.wide_event import set_wide_event_fields
from models import Category
from repositories.category_repository import CategoryRepository
from repositories.service_repository import ServiceRepository
from schemas import CategoryStepTemplate
from services.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


def _template_values(templates: list[CategoryStepTemplate]) -> list[dict[str, Any]]:
    return [template.model_dump() for template in templates]


async def list_categories(db: AsyncSession) -> list[Category]:
    return await CategoryRepository(db).list_all()


async def get_category(db: AsyncSession, category_id: int) -> Category:
    category = await CategoryRepository(db).get_by_id(category_id)
    if category is None:
        raise NotFoundError("Category", category_id)
    return category


async def create_category(
    db: AsyncSession,
    name: str,
    description: str | None = None,
    steps: list[CategoryStepTemplate] | None = None,
) -> Category:
    repo = CategoryRepository(db)
    category = await repo.create(name=name, description=description)
    if steps:
        await repo.add_template_steps(category.id, _template_values(steps))

    logger.info(
        "category.created",
        extra={"category_id": category.id, "template_steps": len(steps or [])},
    )
    set_wide_event_fields(category_id=category.id)
    return await get_category(db, category.id)


async def update_category(
    db: AsyncSession,
    category_id: int,
    fields: dict[str, Any],
    steps: list[CategoryStepTemplate] | None = None,
) -> Category:
    """Merge fields; when ``steps`` is given the template steps are replaced.

    Template steps carry no status history, so replacing them wholesale
    loses nothing.
    """
    repo = CategoryRepository(db)
    category = await get_category(db, category_id)

    await repo.update(category, **fields)
    if steps is not None:
        await repo.delete_template_steps(category_id)
        await repo.add_template_steps(category_id, _template_values(steps))

    logger.info(
        "category.updated",
        extra={"category_id": category_id, "steps_replaced": steps is not None},
    )
    return await get_category(db, category_id)


async def delete_category(db: AsyncSession, category_id: int) -> None:
    """Delete a category unless services still reference it."""
    category = await get_category(db, category_id)

    services_count = await ServiceRepository(db).count_by_category(category_id)
    if services_count > 0:
        raise ConflictError(
            f'Cannot delete category "{category.name}": {services_count} '
            "service(s) still use it. Reassign or remove them first."
        )

    await CategoryRepository(db).delete(category)
    logger.info("category.deleted", extra={"category_id": category_id})
    set_wide_event_fields(category_id=category_id)
