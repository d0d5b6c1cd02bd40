"""Service status derivation from step statuses.

Promotion is one-directional and explicit: SERVICE_STATUS_TRANSITIONS maps
(current service status, step signal) to the new status. Pairs that are not
listed leave the service untouched, which covers:

- CONCLUDED / CANCELLED services (terminal, manual override wins)
- IN_PROGRESS services (never demoted back to PENDING)
- steps all concluded or cancelled (no automatic completion/cancellation)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from core.wide_event import set_wide_event_nested
from models import ServiceStatus, StepStatus
from repositories.service_repository import ServiceRepository
from repositories.step_repository import StepRepository
from services.step_events import StepStatusChanged

logger = logging.getLogger(__name__)


class StepSignal(str, Enum):
    """What the sibling steps say about the service, as a derivation input."""

    ANY_IN_PROGRESS = "any_in_progress"
    NONE_IN_PROGRESS = "none_in_progress"


SERVICE_STATUS_TRANSITIONS: dict[tuple[ServiceStatus, StepSignal], ServiceStatus] = {
    (ServiceStatus.PENDING, StepSignal.ANY_IN_PROGRESS): ServiceStatus.IN_PROGRESS,
}


def classify_steps(step_statuses: Iterable[StepStatus]) -> StepSignal:
    if any(StepStatus(s) is StepStatus.IN_PROGRESS for s in step_statuses):
        return StepSignal.ANY_IN_PROGRESS
    return StepSignal.NONE_IN_PROGRESS


def derive_service_status(
    current: ServiceStatus, step_statuses: Iterable[StepStatus]
) -> ServiceStatus:
    """Pure derivation: the status the service should have after a step change."""
    status = ServiceStatus(current)
    signal = classify_steps(step_statuses)
    return SERVICE_STATUS_TRANSITIONS.get((status, signal), status)


async def apply_derivation(db: AsyncSession, service_id: int) -> ServiceStatus | None:
    """Re-derive and persist a service's status from its current steps.

    Step changes must be flushed before calling. Returns the resulting status,
    or None if the service does not exist.
    """
    service = await ServiceRepository(db).get_plain(service_id)
    if service is None:
        logger.warning("service.derivation.missing", extra={"service_id": service_id})
        return None

    statuses = await StepRepository(db).get_statuses_for_service(service_id)
    current = ServiceStatus(service.status)
    derived = derive_service_status(current, statuses)

    if derived is not current:
        service.status = derived
        await db.flush()
        logger.info(
            "service.status.derived",
            extra={
                "service_id": service_id,
                "from_status": current.value,
                "to_status": derived.value,
            },
        )
        set_wide_event_nested("service", id=service_id, status=derived.value)

    return derived


async def derive_on_step_status_changed(
    db: AsyncSession, event: StepStatusChanged
) -> None:
    """StepStatusChanged handler. Template steps (no service) are ignored."""
    if event.service_id is None:
        return
    await apply_derivation(db, event.service_id)
