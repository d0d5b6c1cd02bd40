"""Service (work order) aggregator.

Listing with filters and pagination, create/update/remove, and the statistics
entry point. Step collections on update are reconciled by step id inside the
request's unit of work; the old delete-all-then-reinsert behaviour is gone.
"""

import logging
from functools import partial
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from core.database import run_after_commit
from core.wide_event import set_wide_event_fields
from models import Service, ServiceStatus, Step, StepStatus
from repositories.category_repository import CategoryRepository
from repositories.client_repository import ClientRepository, CopyMachineRepository
from repositories.service_repository import ServiceRepository
from repositories.user_repository import UserRepository
from schemas import ServiceFilters, ServiceStats, StepDefinition
from services.errors import NotFoundError, ValidationError
from services.image_storage import LocalImageStorage, get_image_storage
from services.service_status import apply_derivation
from services.stats_service import compute_service_stats

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# Step fields a client may define; status and timestamps belong to the lifecycle
_STEP_DEFINITION_FIELDS = (
    "name",
    "description",
    "observation",
    "responsable_id",
    "responsable_client",
    "datetime_expiration",
    "category_id",
)


@dataclass(frozen=True)
class ServicePage:
    data: list[Service]
    total: int
    page: int
    limit: int
    total_pages: int


def normalize_pagination(page: int | None, limit: int | None) -> tuple[int, int]:
    """page floors at 1; limit defaults to 10 and is clamped to [1, 100]."""
    page = max(page or 1, 1)
    limit = DEFAULT_PAGE_SIZE if limit is None else limit
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    return page, limit


def count_pages(total: int, limit: int) -> int:
    """ceil(total / limit), never below 1."""
    return max(math.ceil(total / limit), 1)


async def list_services(db: AsyncSession, filters: ServiceFilters) -> ServicePage:
    page, limit = normalize_pagination(filters.page, filters.limit)

    services, total = await ServiceRepository(db).list_filtered(
        offset=(page - 1) * limit,
        limit=limit,
        category_id=filters.category_id,
        client_id=filters.client_id,
        client_copy_machine_id=filters.client_copy_machine_id,
        city_id=filters.city_id,
        acquisition_type=filters.acquisition_type,
    )
    set_wide_event_fields(services_total=total, services_page=page)
    return ServicePage(
        data=services,
        total=total,
        page=page,
        limit=limit,
        total_pages=count_pages(total, limit),
    )


async def get_service(db: AsyncSession, service_id: int) -> Service:
    service = await ServiceRepository(db).get_by_id(service_id)
    if service is None:
        raise NotFoundError("Service", service_id)
    return service


async def _validate_references(db: AsyncSession, fields: dict[str, Any]) -> None:
    """Referenced client/category/equipment must exist when given."""
    client_id = fields.get("client_id")
    if client_id is not None and not await ClientRepository(db).exists(client_id):
        raise ValidationError(f"Client with ID {client_id} not found")

    category_id = fields.get("category_id")
    if category_id is not None and not await CategoryRepository(db).exists(
        category_id
    ):
        raise ValidationError(f"Category with ID {category_id} not found")

    machine_id = fields.get("client_copy_machine_id")
    if machine_id is not None and not await CopyMachineRepository(db).exists(
        machine_id
    ):
        raise ValidationError(f"Client copy machine with ID {machine_id} not found")


async def _validate_step_definitions(
    db: AsyncSession, definitions: list[StepDefinition]
) -> None:
    responsable_ids = {d.responsable_id for d in definitions if d.responsable_id}
    missing = responsable_ids - await UserRepository(db).get_existing_ids(
        responsable_ids
    )
    if missing:
        raise ValidationError(f"User with ID {min(missing)} not found")

    category_repo = CategoryRepository(db)
    for category_id in {d.category_id for d in definitions if d.category_id}:
        if not await category_repo.exists(category_id):
            raise ValidationError(f"Category with ID {category_id} not found")


def _new_step(service_id: int, definition: StepDefinition) -> Step:
    fields = definition.model_dump(include=set(_STEP_DEFINITION_FIELDS))
    return Step(service_id=service_id, status=StepStatus.PENDING, **fields)


async def create_service(
    db: AsyncSession,
    fields: dict[str, Any],
    steps: list[StepDefinition] | None = None,
) -> Service:
    """Create a service and its steps. New steps always start PENDING."""
    steps = steps or []
    await _validate_references(db, fields)
    await _validate_step_definitions(db, steps)

    service = await ServiceRepository(db).create(
        status=ServiceStatus.PENDING, **fields
    )
    for definition in steps:
        db.add(_new_step(service.id, definition))
    await db.flush()

    logger.info(
        "service.created",
        extra={"service_id": service.id, "steps_count": len(steps)},
    )
    set_wide_event_fields(service_id=service.id)
    return await get_service(db, service.id)


def _apply_status_change(service: Service, fields: dict[str, Any]) -> None:
    """Manual status / reason rules.

    CANCELLED needs a reason (new or already stored); a reason is only
    accepted together with CANCELLED; leaving CANCELLED clears the reason.
    """
    new_status = fields.pop("status", None)
    reason_given = "reason_cancellament" in fields
    reason = fields.pop("reason_cancellament", None)
    reason = reason.strip() if isinstance(reason, str) else reason

    target = ServiceStatus(new_status) if new_status is not None else service.status

    if target is ServiceStatus.CANCELLED:
        effective_reason = reason if reason_given else service.reason_cancellament
        if not effective_reason:
            raise ValidationError("A reason is required to cancel a service")
        service.reason_cancellament = effective_reason
    else:
        if reason_given and reason:
            raise ValidationError(
                "reason_cancellament can only be set when status is CANCELLED"
            )
        service.reason_cancellament = None

    service.status = target


def _reconcile_steps(
    service: Service, definitions: list[StepDefinition]
) -> list[str]:
    """Make service.steps match ``definitions`` by step id.

    - id present: update that step's definition fields (status untouched)
    - id absent: append a new PENDING step
    - existing steps not mentioned: removed (delete-orphan cascades images)

    Returns:
        Stored image paths of removed steps, to delete once rows are gone.
    """
    existing = {step.id: step for step in service.steps}

    seen: set[int] = set()
    for definition in definitions:
        if definition.id is None:
            continue
        if definition.id not in existing:
            raise ValidationError(
                f"Step with ID {definition.id} does not belong to service {service.id}"
            )
        if definition.id in seen:
            raise ValidationError(f"Step with ID {definition.id} is listed twice")
        seen.add(definition.id)

    removed = [step for step in service.steps if step.id not in seen]
    orphaned_paths = [image.path for step in removed for image in step.images]
    for step in removed:
        service.steps.remove(step)

    for definition in definitions:
        if definition.id is None:
            service.steps.append(_new_step(service.id, definition))
            continue
        step = existing[definition.id]
        updates = definition.model_dump(
            include=set(_STEP_DEFINITION_FIELDS), exclude_unset=True
        )
        for key, value in updates.items():
            setattr(step, key, value)

    return orphaned_paths


async def update_service(
    db: AsyncSession,
    service_id: int,
    fields: dict[str, Any],
    steps: list[StepDefinition] | None = None,
    *,
    storage: LocalImageStorage | None = None,
) -> Service:
    """Merge fields, reconcile steps when given, then re-derive the status.

    Args:
        fields: Only keys present are applied (explicit None clears).
        steps: None leaves steps alone; a list (even empty) is authoritative.
    """
    service = await ServiceRepository(db).get_with_steps(service_id)
    if service is None:
        raise NotFoundError("Service", service_id)

    fields = dict(fields)
    await _validate_references(db, fields)
    if steps is not None:
        await _validate_step_definitions(db, steps)

    if "status" in fields or "reason_cancellament" in fields:
        _apply_status_change(service, fields)
    for key, value in fields.items():
        setattr(service, key, value)

    orphaned_paths: list[str] = []
    if steps is not None:
        orphaned_paths = _reconcile_steps(service, steps)

    await db.flush()
    if orphaned_paths:
        storage = storage or get_image_storage()
        run_after_commit(db, partial(storage.delete_many, orphaned_paths))

    await apply_derivation(db, service_id)

    logger.info(
        "service.updated",
        extra={
            "service_id": service_id,
            "fields": sorted(fields),
            "steps_reconciled": steps is not None,
        },
    )
    set_wide_event_fields(service_id=service_id)
    return await get_service(db, service_id)


async def remove_service(
    db: AsyncSession,
    service_id: int,
    *,
    storage: LocalImageStorage | None = None,
) -> None:
    """Delete images, steps and the service; files go once the commit succeeds."""
    repo = ServiceRepository(db)
    service = await repo.get_with_steps(service_id)
    if service is None:
        raise NotFoundError("Service", service_id)

    paths = [image.path for step in service.steps for image in step.images]
    steps_count = len(service.steps)
    await repo.delete(service)

    if paths:
        storage = storage or get_image_storage()
        run_after_commit(db, partial(storage.delete_many, paths))

    logger.info(
        "service.removed",
        extra={"service_id": service_id, "steps_count": steps_count},
    )
    set_wide_event_fields(service_id=service_id)


async def get_service_stats(
    db: AsyncSession, *, now: datetime | None = None
) -> ServiceStats:
    return await compute_service_stats(db, now=now)
