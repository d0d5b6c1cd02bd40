"""Step state machine.

Allowed moves are listed in STEP_TRANSITIONS; anything absent is rejected.

    PENDING ──start──▶ IN_PROGRESS ──conclude──▶ CONCLUDED
       │                    │
       └──────cancel────────┴──────▶ CANCELLED

CONCLUDED and CANCELLED are terminal. Who may act on a step is decided by a
``CanMutate`` policy passed in by the caller, so the rule can change without
touching the table.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from enum import Enum

from models import Step, StepStatus
from services.errors import ForbiddenError, InvalidTransitionError, ValidationError

CanMutate = Callable[[int, Step], bool]


class StepAction(str, Enum):
    START = "start"
    CONCLUDE = "conclude"
    CANCEL = "cancel"


STEP_TRANSITIONS: dict[tuple[StepStatus, StepAction], StepStatus] = {
    (StepStatus.PENDING, StepAction.START): StepStatus.IN_PROGRESS,
    (StepStatus.IN_PROGRESS, StepAction.CONCLUDE): StepStatus.CONCLUDED,
    (StepStatus.PENDING, StepAction.CANCEL): StepStatus.CANCELLED,
    (StepStatus.IN_PROGRESS, StepAction.CANCEL): StepStatus.CANCELLED,
}

_REJECTION_MESSAGES: dict[StepAction, str] = {
    StepAction.START: "Step can only be started if it is pending",
    StepAction.CONCLUDE: "Step can only be concluded if it is in progress",
    StepAction.CANCEL: "Step can only be cancelled if it is pending or in progress",
}


def responsable_only(actor_id: int, step: Step) -> bool:
    """Only the assigned responsible user may act. Unassigned steps are locked."""
    return step.responsable_id is not None and step.responsable_id == actor_id


def next_status(current: StepStatus, action: StepAction) -> StepStatus:
    """Look up the target status, raising InvalidTransitionError if not allowed."""
    target = STEP_TRANSITIONS.get((current, action))
    if target is None:
        message = _REJECTION_MESSAGES[action]
        if action is StepAction.CANCEL and current is StepStatus.CONCLUDED:
            message = "Cannot cancel a concluded step"
        raise InvalidTransitionError(message, current_status=current.value)
    return target


def ensure_can_mutate(
    step: Step, actor_id: int, can_mutate: CanMutate, verb: str = "modify"
) -> None:
    if not can_mutate(actor_id, step):
        raise ForbiddenError(
            f"Only the responsable assigned to this step can {verb} it"
        )


def apply_transition(
    step: Step,
    action: StepAction,
    actor_id: int,
    *,
    now: datetime,
    can_mutate: CanMutate = responsable_only,
    reason: str | None = None,
) -> tuple[StepStatus, StepStatus]:
    """Validate and apply one transition to ``step`` in memory.

    Checks run in order: ownership, cancellation reason, status. Nothing on
    the step is touched unless all of them pass.

    Returns:
        (old_status, new_status)

    Raises:
        ForbiddenError: can_mutate rejected the actor
        ValidationError: cancel without a non-blank reason
        InvalidTransitionError: the table has no entry for (status, action)
    """
    ensure_can_mutate(step, actor_id, can_mutate, verb=action.value)

    if action is StepAction.CANCEL:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A reason is required to cancel a step")

    old_status = StepStatus(step.status)
    new_status = next_status(old_status, action)

    step.status = new_status
    if new_status is StepStatus.IN_PROGRESS:
        step.datetime_start = now
    elif new_status is StepStatus.CONCLUDED:
        step.datetime_conclusion = now
    elif new_status is StepStatus.CANCELLED:
        step.reason_cancellament = reason

    return old_status, new_status
