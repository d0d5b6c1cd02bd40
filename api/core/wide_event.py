"""Request-scoped context for canonical log lines.

Routes and services add fields as they go; RequestTimingMiddleware creates the
dict when a request starts and emits it as a single ``request.completed`` line
when the response body finishes.

Usage:
    from core.wide_event import set_wide_event_fields

    set_wide_event_fields(step_id=step.id, step_transition="start")
    set_wide_event_nested("stats", mode="latest_step", total=42)
"""

from contextvars import ContextVar
from typing import Any

_wide_event: ContextVar[dict[str, Any]] = ContextVar("wide_event")


def init_wide_event() -> dict[str, Any]:
    """Start a fresh event for the current async context."""
    event: dict[str, Any] = {}
    _wide_event.set(event)
    return event


def get_wide_event() -> dict[str, Any]:
    """Current event, or an empty dict outside a request."""
    try:
        return _wide_event.get()
    except LookupError:
        return {}


def set_wide_event_field(key: str, value: Any) -> None:
    """No-op outside request context (CLI, tests without the fixture)."""
    event = _wide_event.get(None)
    if event is not None:
        event[key] = value


def set_wide_event_fields(**kwargs: Any) -> None:
    event = _wide_event.get(None)
    if event is not None:
        event.update(kwargs)


def set_wide_event_nested(category: str, **kwargs: Any) -> None:
    """Set fields under a nested key.

    Example:
        set_wide_event_nested("service", id=3, status="IN_PROGRESS")
        # {"service": {"id": 3, "status": "IN_PROGRESS"}}
    """
    event = _wide_event.get(None)
    if event is None:
        return
    event.setdefault(category, {}).update(kwargs)


def clear_wide_event() -> None:
    _wide_event.set({})
