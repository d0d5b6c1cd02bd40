"""Step operations: views, notes, status transitions and images.

Mutations go through the ownership policy first (``can_mutate``), then the
state machine in step_lifecycle. Successful transitions publish a
StepStatusChanged event; the default dispatcher re-derives the owning
service's status inside the same session.
"""

import logging
from functools import partial
from datetime import UTC, datetime, time, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from core.database import run_after_commit
from core.wide_event import set_wide_event_fields
from models import Image, Step, utcnow
from repositories.image_repository import ImageRepository
from repositories.step_repository import StepRepository
from schemas import MyStepsFilter
from services.errors import NotFoundError, ValidationError
from services.image_storage import LocalImageStorage, get_image_storage
from services.service_status import derive_on_step_status_changed
from services.step_events import (
    StepEventDispatcher,
    StepStatusChanged,
    log_step_status_changed,
)
from services.step_lifecycle import (
    CanMutate,
    StepAction,
    apply_transition,
    ensure_can_mutate,
    responsable_only,
)

logger = logging.getLogger(__name__)

TRANSITION_LOG_EVENTS = {
    StepAction.START: "step.started",
    StepAction.CONCLUDE: "step.concluded",
    StepAction.CANCEL: "step.cancelled",
}

_default_dispatcher = StepEventDispatcher()
_default_dispatcher.subscribe(derive_on_step_status_changed)
_default_dispatcher.subscribe(log_step_status_changed)


def get_step_dispatcher() -> StepEventDispatcher:
    return _default_dispatcher


def utc_day_window(now: datetime) -> tuple[datetime, datetime]:
    """[today 00:00, tomorrow 00:00) in UTC."""
    start = datetime.combine(now.astimezone(UTC).date(), time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


async def _get_step_or_404(db: AsyncSession, step_id: int) -> Step:
    step = await StepRepository(db).get_by_id(step_id)
    if step is None:
        raise NotFoundError("Step", step_id)
    return step


async def list_my_steps(
    db: AsyncSession,
    user_id: int,
    step_filter: MyStepsFilter | str | None = None,
) -> list[Step]:
    """Steps assigned to user_id, newest first, optionally limited to today."""
    created_between = None
    expires_between = None

    if step_filter is not None:
        try:
            step_filter = MyStepsFilter(step_filter)
        except ValueError:
            raise ValidationError(
                f"Unknown filter '{step_filter}'. "
                "Use 'created_today' or 'expires_today'."
            ) from None

        window = utc_day_window(utcnow())
        if step_filter is MyStepsFilter.CREATED_TODAY:
            created_between = window
        else:
            expires_between = window

    return await StepRepository(db).list_for_responsable(
        user_id,
        created_between=created_between,
        expires_between=expires_between,
    )


async def get_step(db: AsyncSession, step_id: int) -> Step:
    """Any authenticated user may view any step."""
    return await _get_step_or_404(db, step_id)


async def update_step_notes(
    db: AsyncSession,
    step_id: int,
    actor_id: int,
    changes: dict[str, str | None],
    *,
    can_mutate: CanMutate = responsable_only,
) -> Step:
    """Update observation / responsable_client only. Status is never touched.

    Args:
        changes: Only the keys present are applied (explicit None clears).
    """
    step = await _get_step_or_404(db, step_id)
    ensure_can_mutate(step, actor_id, can_mutate, verb="update")

    allowed = {"observation", "responsable_client"}
    for key, value in changes.items():
        if key in allowed:
            setattr(step, key, value)

    await StepRepository(db).save(step)
    set_wide_event_fields(step_id=step_id, step_notes_updated=sorted(changes))
    return await _get_step_or_404(db, step_id)


async def _transition(
    db: AsyncSession,
    step_id: int,
    actor_id: int,
    action: StepAction,
    *,
    reason: str | None,
    can_mutate: CanMutate,
    dispatcher: StepEventDispatcher | None,
) -> Step:
    step = await _get_step_or_404(db, step_id)

    old_status, new_status = apply_transition(
        step,
        action,
        actor_id,
        now=utcnow(),
        can_mutate=can_mutate,
        reason=reason,
    )
    await StepRepository(db).save(step)

    logger.info(
        TRANSITION_LOG_EVENTS[action],
        extra={
            "step_id": step_id,
            "service_id": step.service_id,
            "user_id": actor_id,
            "from_status": old_status.value,
            "to_status": new_status.value,
        },
    )
    set_wide_event_fields(step_id=step_id, step_transition=action.value)

    event = StepStatusChanged(
        step_id=step.id,
        service_id=step.service_id,
        old_status=old_status,
        new_status=new_status,
        actor_id=actor_id,
    )
    await (dispatcher or get_step_dispatcher()).publish(db, event)

    return await _get_step_or_404(db, step_id)


async def start_step(
    db: AsyncSession,
    step_id: int,
    actor_id: int,
    *,
    can_mutate: CanMutate = responsable_only,
    dispatcher: StepEventDispatcher | None = None,
) -> Step:
    """PENDING -> IN_PROGRESS, stamping datetime_start."""
    return await _transition(
        db,
        step_id,
        actor_id,
        StepAction.START,
        reason=None,
        can_mutate=can_mutate,
        dispatcher=dispatcher,
    )


async def conclude_step(
    db: AsyncSession,
    step_id: int,
    actor_id: int,
    *,
    can_mutate: CanMutate = responsable_only,
    dispatcher: StepEventDispatcher | None = None,
) -> Step:
    """IN_PROGRESS -> CONCLUDED, stamping datetime_conclusion."""
    return await _transition(
        db,
        step_id,
        actor_id,
        StepAction.CONCLUDE,
        reason=None,
        can_mutate=can_mutate,
        dispatcher=dispatcher,
    )


async def cancel_step(
    db: AsyncSession,
    step_id: int,
    actor_id: int,
    reason: str | None,
    *,
    can_mutate: CanMutate = responsable_only,
    dispatcher: StepEventDispatcher | None = None,
) -> Step:
    """PENDING/IN_PROGRESS -> CANCELLED, recording the reason."""
    return await _transition(
        db,
        step_id,
        actor_id,
        StepAction.CANCEL,
        reason=reason,
        can_mutate=can_mutate,
        dispatcher=dispatcher,
    )


# =============================================================================
# Images
# =============================================================================


async def attach_image(
    db: AsyncSession,
    step_id: int,
    actor_id: int,
    *,
    filename: str,
    content_type: str | None,
    data: bytes,
    max_bytes: int,
    can_mutate: CanMutate = responsable_only,
    storage: LocalImageStorage | None = None,
) -> Image:
    step = await _get_step_or_404(db, step_id)
    ensure_can_mutate(step, actor_id, can_mutate, verb="upload images to")

    if not content_type or not content_type.startswith("image/"):
        raise ValidationError("Only image files are allowed")
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > max_bytes:
        raise ValidationError(f"Image exceeds the maximum size of {max_bytes} bytes")

    path = (storage or get_image_storage()).store(data, filename)
    image = await ImageRepository(db).create(step_id, path)

    logger.info(
        "step.image.attached",
        extra={"step_id": step_id, "image_id": image.id, "size_bytes": len(data)},
    )
    set_wide_event_fields(step_id=step_id, image_id=image.id)
    return image


async def list_images(db: AsyncSession, step_id: int) -> list[Image]:
    """Images of an existing step, newest first."""
    await _get_step_or_404(db, step_id)
    return await ImageRepository(db).list_for_step(step_id)


async def delete_image(
    db: AsyncSession,
    step_id: int,
    image_id: int,
    actor_id: int,
    *,
    can_mutate: CanMutate = responsable_only,
    storage: LocalImageStorage | None = None,
) -> None:
    step = await _get_step_or_404(db, step_id)
    ensure_can_mutate(step, actor_id, can_mutate, verb="delete images of")

    image_repo = ImageRepository(db)
    image = await image_repo.get_for_step(image_id, step_id)
    if image is None:
        raise NotFoundError("Image", image_id)

    path = image.path
    await image_repo.delete(image)
    storage = storage or get_image_storage()
    run_after_commit(db, partial(storage.delete, path))

    logger.info("step.image.deleted", extra={"step_id": step_id, "image_id": image_id})
    set_wide_event_fields(step_id=step_id, image_id=image_id)
