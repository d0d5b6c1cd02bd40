"""Route tests for the admin dashboard."""

from collections.abc import Callable

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.factories import (
    AdminUserFactory,
    ClientFactory,
    DashboardStatsFactory,
    ServiceFactory,
    UserFactory,
    create_async,
)

pytestmark = pytest.mark.integration


@pytest.fixture
async def admin_id(db_session: AsyncSession, login_as: Callable[[int], None]) -> int:
    admin = await create_async(AdminUserFactory, db_session)
    await db_session.commit()
    login_as(admin.id)
    return admin.id


class TestAccess:
    async def test_requires_login(self, client: AsyncClient):
        assert (await client.get("/api/dashboard/stats")).status_code == 401

    async def test_technician_is_forbidden(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        login_as: Callable[[int], None],
    ):
        user = await create_async(UserFactory, db_session)
        await db_session.commit()
        login_as(user.id)

        response = await client.get("/api/dashboard/stats")

        assert response.status_code == 403

    async def test_inactive_admin_is_forbidden(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        login_as: Callable[[int], None],
    ):
        admin = await create_async(AdminUserFactory, db_session, active=False)
        await db_session.commit()
        login_as(admin.id)

        response = await client.get("/api/dashboard/stats/history")

        assert response.status_code == 403


class TestCurrentMonth:
    async def test_snapshot_uses_camel_case_keys(
        self, client: AsyncClient, db_session: AsyncSession, admin_id: int
    ):
        await create_async(ClientFactory, db_session)
        await create_async(ServiceFactory, db_session)
        await db_session.commit()

        response = await client.get("/api/dashboard/stats")

        assert response.status_code == 200
        body = response.json()
        assert set(body["clients"]) == {"total", "newThisMonth"}
        assert body["clients"]["total"] == 1
        assert body["clients"]["newThisMonth"] == 1
        assert body["services"]["total"] == 1
        assert body["services"]["thisMonth"] == 1
        assert "inProgress" in body["services"]

    async def test_force_recomputes(
        self, client: AsyncClient, db_session: AsyncSession, admin_id: int
    ):
        await client.get("/api/dashboard/stats")
        await create_async(ServiceFactory, db_session)
        await db_session.commit()

        cached = await client.get("/api/dashboard/stats")
        forced = await client.get("/api/dashboard/stats", params={"force": "true"})

        assert cached.json()["services"]["total"] == 0
        assert forced.json()["services"]["total"] == 1


class TestHistory:
    async def test_stored_month(
        self, client: AsyncClient, db_session: AsyncSession, admin_id: int
    ):
        await create_async(
            DashboardStatsFactory, db_session, year=2025, month=7, services_total=12
        )
        await db_session.commit()

        response = await client.get("/api/dashboard/stats/2025/7")

        assert response.status_code == 200
        assert response.json()["services"]["total"] == 12

    async def test_missing_month_is_null(self, client: AsyncClient, admin_id: int):
        response = await client.get("/api/dashboard/stats/2019/1")

        assert response.status_code == 200
        assert response.json() is None

    async def test_invalid_month_is_unprocessable(
        self, client: AsyncClient, admin_id: int
    ):
        response = await client.get("/api/dashboard/stats/2025/13")
        assert response.status_code == 422

    async def test_history_order(
        self, client: AsyncClient, db_session: AsyncSession, admin_id: int
    ):
        for month in (3, 5, 4):
            await create_async(DashboardStatsFactory, db_session, year=2025, month=month)
        await db_session.commit()

        response = await client.get("/api/dashboard/stats/history")

        assert [m["month"] for m in response.json()] == [5, 4, 3]
