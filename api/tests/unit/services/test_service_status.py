"""Unit tests for the pure service status derivation."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from models import ServiceStatus, StepStatus
from services.service_status import (
    SERVICE_STATUS_TRANSITIONS,
    StepSignal,
    classify_steps,
    derive_service_status,
)

pytestmark = pytest.mark.unit


class TestClassifySteps:
    def test_any_in_progress(self):
        signal = classify_steps([StepStatus.PENDING, StepStatus.IN_PROGRESS])
        assert signal is StepSignal.ANY_IN_PROGRESS

    def test_no_steps(self):
        assert classify_steps([]) is StepSignal.NONE_IN_PROGRESS

    def test_accepts_raw_values(self):
        assert classify_steps(["IN_PROGRESS"]) is StepSignal.ANY_IN_PROGRESS


class TestDeriveServiceStatus:
    def test_pending_service_with_started_step_is_promoted(self):
        derived = derive_service_status(
            ServiceStatus.PENDING, [StepStatus.IN_PROGRESS, StepStatus.PENDING]
        )
        assert derived is ServiceStatus.IN_PROGRESS

    def test_pending_service_without_started_steps_stays_pending(self):
        derived = derive_service_status(
            ServiceStatus.PENDING, [StepStatus.CONCLUDED, StepStatus.CANCELLED]
        )
        assert derived is ServiceStatus.PENDING

    @pytest.mark.parametrize(
        "current",
        [ServiceStatus.CONCLUDED, ServiceStatus.CANCELLED, ServiceStatus.IN_PROGRESS],
    )
    def test_non_pending_service_is_left_alone(self, current: ServiceStatus):
        assert derive_service_status(current, [StepStatus.IN_PROGRESS]) is current

    def test_in_progress_service_is_never_demoted(self):
        derived = derive_service_status(
            ServiceStatus.IN_PROGRESS, [StepStatus.PENDING, StepStatus.PENDING]
        )
        assert derived is ServiceStatus.IN_PROGRESS

    def test_only_promotion_is_pending_to_in_progress(self):
        assert SERVICE_STATUS_TRANSITIONS == {
            (ServiceStatus.PENDING, StepSignal.ANY_IN_PROGRESS): ServiceStatus.IN_PROGRESS
        }

    @given(
        current=st.sampled_from([ServiceStatus.CONCLUDED, ServiceStatus.CANCELLED]),
        statuses=st.lists(st.sampled_from(list(StepStatus)), max_size=8),
    )
    def test_terminal_services_are_never_changed(
        self, current: ServiceStatus, statuses: list[StepStatus]
    ):
        assert derive_service_status(current, statuses) is current
