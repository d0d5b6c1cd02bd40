"""Unit tests for the in-process StepStatusChanged dispatcher."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from models import StepStatus
from services.step_events import (
    StepEventDispatcher,
    StepStatusChanged,
    log_step_status_changed,
)
from services.steps_service import get_step_dispatcher

pytestmark = pytest.mark.unit


def _event(service_id: int | None = 10) -> StepStatusChanged:
    return StepStatusChanged(
        step_id=1,
        service_id=service_id,
        old_status=StepStatus.PENDING,
        new_status=StepStatus.IN_PROGRESS,
        actor_id=5,
    )


class TestStepEventDispatcher:
    async def test_handlers_run_in_subscription_order(self):
        dispatcher = StepEventDispatcher()
        calls: list[str] = []

        async def first(db, event):
            calls.append("first")

        async def second(db, event):
            calls.append("second")

        dispatcher.subscribe(first)
        dispatcher.subscribe(second)
        await dispatcher.publish(MagicMock(), _event())

        assert calls == ["first", "second"]

    async def test_subscribe_is_idempotent(self):
        dispatcher = StepEventDispatcher()
        handler = AsyncMock()

        dispatcher.subscribe(handler)
        dispatcher.subscribe(handler)
        await dispatcher.publish(MagicMock(), _event())

        handler.assert_awaited_once()

    async def test_unsubscribed_handler_is_not_called(self):
        dispatcher = StepEventDispatcher()
        handler = AsyncMock()
        dispatcher.subscribe(handler)
        dispatcher.unsubscribe(handler)

        await dispatcher.publish(MagicMock(), _event())

        handler.assert_not_awaited()
        assert dispatcher.handlers == ()

    async def test_handler_errors_propagate(self):
        dispatcher = StepEventDispatcher()
        dispatcher.subscribe(AsyncMock(side_effect=RuntimeError("boom")))

        with pytest.raises(RuntimeError, match="boom"):
            await dispatcher.publish(MagicMock(), _event())

    def test_default_dispatcher_derives_then_logs(self):
        names = [h.__name__ for h in get_step_dispatcher().handlers]
        assert names == ["derive_on_step_status_changed", "log_step_status_changed"]


class TestLogStepStatusChanged:
    async def test_emits_business_event(self):
        with patch("services.step_events.log_business_event") as mock_log:
            await log_step_status_changed(MagicMock(), _event(service_id=None))

        mock_log.assert_called_once()
        name = mock_log.call_args.args[0]
        properties = mock_log.call_args.kwargs["properties"]
        assert name == "step_status_changed"
        assert properties["service_id"] == 0
        assert properties["new_status"] == "IN_PROGRESS"
