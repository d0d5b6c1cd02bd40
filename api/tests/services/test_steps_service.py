"""Integration tests for step operations (lifecycle, notes, images).

Runs against the in-memory database. Unless a test passes its own dispatcher,
transitions go through the default one, so the owning service is re-derived.
"""

import logging
from datetime import UTC, datetime, timedelta

import pytest
import time_machine
from sqlalchemy.ext.asyncio import AsyncSession

from models import Service, ServiceStatus, Step, StepStatus, User
from schemas import StepDefinition
from services.errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from services.image_storage import LocalImageStorage
from services.step_events import StepEventDispatcher
from services.steps_service import (
    attach_image,
    cancel_step,
    conclude_step,
    delete_image,
    get_step,
    list_images,
    list_my_steps,
    start_step,
    update_step_notes,
)
from services.work_orders_service import create_service, get_service
from tests.factories import (
    CategoryFactory,
    ClientFactory,
    ServiceFactory,
    StepFactory,
    UserFactory,
    create_async,
)

pytestmark = pytest.mark.integration

MAX_BYTES = 1024


@pytest.fixture
async def technician(db_session: AsyncSession) -> User:
    return await create_async(UserFactory, db_session)


@pytest.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await create_async(UserFactory, db_session)


@pytest.fixture
async def service(db_session: AsyncSession) -> Service:
    return await create_async(ServiceFactory, db_session)


async def _step(
    db: AsyncSession, service: Service, user: User | None, **kwargs
) -> Step:
    return await create_async(
        StepFactory,
        db,
        service_id=service.id,
        responsable_id=user.id if user else None,
        **kwargs,
    )


class TestStartStepScenario:
    async def test_start_promotes_service_and_second_start_fails(
        self, db_session: AsyncSession
    ):
        """Service with one "Inspect" step started by its responsible user 5."""
        await create_async(UserFactory, db_session, id=5)
        client = await create_async(ClientFactory, db_session, id=1)
        await create_async(CategoryFactory, db_session, id=1)
        category = await create_async(CategoryFactory, db_session, id=2)

        created = await create_service(
            db_session,
            {"client_id": client.id, "category_id": category.id},
            [StepDefinition(name="Inspect", responsable_id=5)],
        )
        step_id = created.steps[0].id

        step = await start_step(db_session, step_id, 5)

        assert step.status == StepStatus.IN_PROGRESS
        assert step.datetime_start is not None
        assert step.service.status == ServiceStatus.IN_PROGRESS
        reloaded = await get_service(db_session, created.id)
        assert reloaded.status == ServiceStatus.IN_PROGRESS

        with pytest.raises(InvalidTransitionError):
            await start_step(db_session, step_id, 5)


class TestTransitions:
    async def test_start_by_other_user_is_forbidden_and_changes_nothing(
        self, db_session: AsyncSession, service: Service, technician: User, other_user
    ):
        step = await _step(db_session, service, technician)

        with pytest.raises(ForbiddenError):
            await start_step(db_session, step.id, other_user.id)

        reloaded = await get_step(db_session, step.id)
        assert reloaded.status == StepStatus.PENDING
        assert reloaded.datetime_start is None
        assert (await get_service(db_session, service.id)).status == (
            ServiceStatus.PENDING
        )

    async def test_unassigned_step_is_forbidden_for_everyone(
        self, db_session: AsyncSession, service: Service, technician: User
    ):
        step = await _step(db_session, service, None)

        with pytest.raises(ForbiddenError):
            await start_step(db_session, step.id, technician.id)

    async def test_conclude_stamps_conclusion(
        self, db_session: AsyncSession, service: Service, technician: User
    ):
        step = await _step(db_session, service, technician)
        await start_step(db_session, step.id, technician.id)

        concluded = await conclude_step(db_session, step.id, technician.id)

        assert concluded.status == StepStatus.CONCLUDED
        assert concluded.datetime_conclusion is not None

    async def test_transitions_are_logged_by_outcome(
        self,
        db_session: AsyncSession,
        service: Service,
        technician: User,
        caplog: pytest.LogCaptureFixture,
    ):
        step = await _step(db_session, service, technician)

        with caplog.at_level(logging.INFO, logger="services.steps_service"):
            await start_step(db_session, step.id, technician.id)
            await conclude_step(db_session, step.id, technician.id)

        messages = [r.getMessage() for r in caplog.records]
        assert "step.started" in messages
        assert "step.concluded" in messages

    async def test_conclude_pending_step_is_invalid(
        self, db_session: AsyncSession, service: Service, technician: User
    ):
        step = await _step(db_session, service, technician)

        with pytest.raises(InvalidTransitionError):
            await conclude_step(db_session, step.id, technician.id)

    async def test_concluded_step_is_terminal(
        self, db_session: AsyncSession, service: Service, technician: User
    ):
        step = await _step(db_session, service, technician)
        await start_step(db_session, step.id, technician.id)
        await conclude_step(db_session, step.id, technician.id)

        with pytest.raises(InvalidTransitionError):
            await start_step(db_session, step.id, technician.id)
        with pytest.raises(InvalidTransitionError):
            await conclude_step(db_session, step.id, technician.id)
        with pytest.raises(InvalidTransitionError):
            await cancel_step(db_session, step.id, technician.id, "too late")

        assert (await get_step(db_session, step.id)).status == StepStatus.CONCLUDED

    async def test_cancel_requires_reason(
        self, db_session: AsyncSession, service: Service, technician: User
    ):
        step = await _step(db_session, service, technician)

        with pytest.raises(ValidationError):
            await cancel_step(db_session, step.id, technician.id, "  ")

        assert (await get_step(db_session, step.id)).status == StepStatus.PENDING

    async def test_cancel_records_reason(
        self, db_session: AsyncSession, service: Service, technician: User
    ):
        step = await _step(db_session, service, technician)

        cancelled = await cancel_step(
            db_session, step.id, technician.id, "Client closed"
        )

        assert cancelled.status == StepStatus.CANCELLED
        assert cancelled.reason_cancellament == "Client closed"

    async def test_missing_step_is_not_found(
        self, db_session: AsyncSession, technician: User
    ):
        with pytest.raises(NotFoundError):
            await start_step(db_session, 9999, technician.id)

    async def test_manually_concluded_service_is_not_changed(
        self, db_session: AsyncSession, technician: User
    ):
        service = await create_async(
            ServiceFactory, db_session, status=ServiceStatus.CONCLUDED
        )
        step = await _step(db_session, service, technician)

        await start_step(db_session, step.id, technician.id)

        assert (await get_service(db_session, service.id)).status == (
            ServiceStatus.CONCLUDED
        )

    async def test_custom_dispatcher_receives_event(
        self, db_session: AsyncSession, service: Service, technician: User
    ):
        step = await _step(db_session, service, technician)
        received = []

        async def capture(db, event):
            received.append(event)

        dispatcher = StepEventDispatcher()
        dispatcher.subscribe(capture)

        await start_step(db_session, step.id, technician.id, dispatcher=dispatcher)

        assert len(received) == 1
        event = received[0]
        assert (event.step_id, event.service_id, event.actor_id) == (
            step.id,
            service.id,
            technician.id,
        )
        assert event.old_status == StepStatus.PENDING
        assert event.new_status == StepStatus.IN_PROGRESS
        # Derivation handler was not subscribed, so the service stays PENDING
        assert (await get_service(db_session, service.id)).status == (
            ServiceStatus.PENDING
        )

    async def test_injected_policy_allows_any_actor(
        self, db_session: AsyncSession, service: Service, technician: User, other_user
    ):
        step = await _step(db_session, service, technician)

        started = await start_step(
            db_session, step.id, other_user.id, can_mutate=lambda actor, s: True
        )

        assert started.status == StepStatus.IN_PROGRESS


class TestUpdateNotes:
    async def test_updates_only_supplied_fields(
        self, db_session: AsyncSession, service: Service, technician: User
    ):
        step = await _step(
            db_session, service, technician, observation="old", responsable_client="Ana"
        )

        updated = await update_step_notes(
            db_session, step.id, technician.id, {"observation": "toner replaced"}
        )

        assert updated.observation == "toner replaced"
        assert updated.responsable_client == "Ana"
        assert updated.status == StepStatus.PENDING

    async def test_status_key_is_ignored(
        self, db_session: AsyncSession, service: Service, technician: User
    ):
        step = await _step(db_session, service, technician)

        updated = await update_step_notes(
            db_session, step.id, technician.id, {"status": StepStatus.CONCLUDED}
        )

        assert updated.status == StepStatus.PENDING

    async def test_other_user_is_forbidden(
        self, db_session: AsyncSession, service: Service, technician: User, other_user
    ):
        step = await _step(db_session, service, technician)

        with pytest.raises(ForbiddenError):
            await update_step_notes(
                db_session, step.id, other_user.id, {"observation": "x"}
            )


FROZEN_NOW = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)


class TestListMySteps:
    async def test_filters_by_today_in_utc(
        self, db_session: AsyncSession, service: Service, technician: User, other_user
    ):
        today = datetime(2026, 3, 4, 8, 0, tzinfo=UTC)
        yesterday = today - timedelta(days=1)

        created_today = await _step(db_session, service, technician, created_at=today)
        old_expiring_today = await _step(
            db_session,
            service,
            technician,
            created_at=yesterday,
            datetime_expiration=datetime(2026, 3, 4, 23, 0, tzinfo=UTC),
        )
        await _step(
            db_session,
            service,
            technician,
            created_at=yesterday,
            datetime_expiration=datetime(2026, 3, 5, 0, 0, tzinfo=UTC),
        )
        await _step(db_session, service, other_user, created_at=today)

        everything = await list_my_steps(db_session, technician.id)
        assert len(everything) == 3
        assert everything[0].id == created_today.id

        with time_machine.travel(FROZEN_NOW, tick=False):
            created = await list_my_steps(db_session, technician.id, "created_today")
            expiring = await list_my_steps(
                db_session, technician.id, "expires_today"
            )

        assert [s.id for s in created] == [created_today.id]
        assert [s.id for s in expiring] == [old_expiring_today.id]

    async def test_unknown_filter_is_rejected(
        self, db_session: AsyncSession, technician: User
    ):
        with pytest.raises(ValidationError):
            await list_my_steps(db_session, technician.id, "tomorrow")


class TestImages:
    async def test_attach_list_and_delete(
        self,
        db_session: AsyncSession,
        service: Service,
        technician: User,
        image_storage: LocalImageStorage,
    ):
        step = await _step(db_session, service, technician)

        image = await attach_image(
            db_session,
            step.id,
            technician.id,
            filename="before.jpg",
            content_type="image/jpeg",
            data=b"jpeg-bytes",
            max_bytes=MAX_BYTES,
            storage=image_storage,
        )
        assert image.path.startswith("/uploads/steps/")
        assert image_storage.resolve(image.path).exists()

        images = await list_images(db_session, step.id)
        assert [i.id for i in images] == [image.id]

        await delete_image(
            db_session, step.id, image.id, technician.id, storage=image_storage
        )

        assert await list_images(db_session, step.id) == []
        # The file outlives the row until the transaction commits
        assert image_storage.resolve(image.path).exists()

        await db_session.commit()
        assert not image_storage.resolve(image.path).exists()

    @pytest.mark.parametrize(
        ("content_type", "data"),
        [
            ("application/pdf", b"%PDF"),
            (None, b"bytes"),
            ("image/png", b""),
            ("image/png", b"x" * (MAX_BYTES + 1)),
        ],
    )
    async def test_rejects_invalid_uploads(
        self,
        db_session: AsyncSession,
        service: Service,
        technician: User,
        image_storage: LocalImageStorage,
        content_type: str | None,
        data: bytes,
    ):
        step = await _step(db_session, service, technician)

        with pytest.raises(ValidationError):
            await attach_image(
                db_session,
                step.id,
                technician.id,
                filename="file",
                content_type=content_type,
                data=data,
                max_bytes=MAX_BYTES,
                storage=image_storage,
            )

    async def test_attach_by_other_user_is_forbidden(
        self,
        db_session: AsyncSession,
        service: Service,
        technician: User,
        other_user: User,
        image_storage: LocalImageStorage,
    ):
        step = await _step(db_session, service, technician)

        with pytest.raises(ForbiddenError):
            await attach_image(
                db_session,
                step.id,
                other_user.id,
                filename="a.png",
                content_type="image/png",
                data=b"png",
                max_bytes=MAX_BYTES,
                storage=image_storage,
            )

    async def test_delete_image_of_another_step_is_not_found(
        self,
        db_session: AsyncSession,
        service: Service,
        technician: User,
        image_storage: LocalImageStorage,
    ):
        step = await _step(db_session, service, technician)
        other_step = await _step(db_session, service, technician)
        image = await attach_image(
            db_session,
            other_step.id,
            technician.id,
            filename="a.png",
            content_type="image/png",
            data=b"png",
            max_bytes=MAX_BYTES,
            storage=image_storage,
        )

        with pytest.raises(NotFoundError):
            await delete_image(
                db_session, step.id, image.id, technician.id, storage=image_storage
            )

    async def test_rolled_back_delete_keeps_file(
        self,
        db_session: AsyncSession,
        service: Service,
        technician: User,
        image_storage: LocalImageStorage,
    ):
        step = await _step(db_session, service, technician)
        image = await attach_image(
            db_session,
            step.id,
            technician.id,
            filename="a.png",
            content_type="image/png",
            data=b"png",
            max_bytes=MAX_BYTES,
            storage=image_storage,
        )
        await db_session.commit()
        image_id, path = image.id, image.path

        await delete_image(
            db_session, step.id, image_id, technician.id, storage=image_storage
        )
        await db_session.rollback()

        images = await list_images(db_session, step.id)
        assert [i.id for i in images] == [image_id]
        assert image_storage.resolve(path).exists()

    async def test_list_images_of_missing_step(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await list_images(db_session, 12345)
