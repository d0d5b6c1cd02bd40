"""Unit tests for the request-scoped wide event context."""

import pytest

from core.wide_event import (
    clear_wide_event,
    get_wide_event,
    init_wide_event,
    set_wide_event_field,
    set_wide_event_fields,
    set_wide_event_nested,
)

pytestmark = pytest.mark.unit


def test_fields_accumulate():
    init_wide_event()

    set_wide_event_field("step_id", 3)
    set_wide_event_fields(step_transition="start", user_id=5)

    assert get_wide_event() == {"step_id": 3, "step_transition": "start", "user_id": 5}


def test_nested_fields_merge():
    init_wide_event()

    set_wide_event_nested("service", id=3)
    set_wide_event_nested("service", status="IN_PROGRESS")

    assert get_wide_event()["service"] == {"id": 3, "status": "IN_PROGRESS"}


def test_clear_resets_event():
    init_wide_event()
    set_wide_event_fields(a=1)

    clear_wide_event()

    assert get_wide_event() == {}
