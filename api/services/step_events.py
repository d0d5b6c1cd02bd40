"""In-process StepStatusChanged events.

A step transition publishes one event after the step row is flushed. Handlers
run sequentially on the same AsyncSession, so anything they write commits or
rolls back together with the step (one unit of work per request).

This is intentionally in-process (no broker): the only consumers are the
service status derivation and the business event log.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from core.telemetry import log_business_event
from models import StepStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepStatusChanged:
    step_id: int
    service_id: int | None
    old_status: StepStatus
    new_status: StepStatus
    actor_id: int


StepEventHandler = Callable[[AsyncSession, StepStatusChanged], Awaitable[None]]


class StepEventDispatcher:
    """Ordered list of handlers. Handler errors propagate to the caller."""

    def __init__(self) -> None:
        self._handlers: list[StepEventHandler] = []

    def subscribe(self, handler: StepEventHandler) -> StepEventHandler:
        if handler not in self._handlers:
            self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler: StepEventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def handlers(self) -> tuple[StepEventHandler, ...]:
        return tuple(self._handlers)

    async def publish(self, db: AsyncSession, event: StepStatusChanged) -> None:
        logger.debug(
            "step.event.published",
            extra={"step_id": event.step_id, "handlers": len(self._handlers)},
        )
        for handler in tuple(self._handlers):
            await handler(db, event)


async def log_step_status_changed(db: AsyncSession, event: StepStatusChanged) -> None:
    log_business_event(
        "step_status_changed",
        properties={
            "step_id": event.step_id,
            "service_id": event.service_id or 0,
            "old_status": event.old_status.value,
            "new_status": event.new_status.value,
        },
    )
