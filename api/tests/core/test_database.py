"""Tests for core.database post-commit callbacks.

Side effects queued with run_after_commit() only happen once the outermost
transaction commits; a rollback or a close without commit discards them.
"""

import logging

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.database import run_after_commit

pytestmark = pytest.mark.integration


class TestRunAfterCommit:
    async def test_runs_in_order_on_commit(self, db_session: AsyncSession):
        calls: list[str] = []
        await db_session.execute(text("SELECT 1"))

        run_after_commit(db_session, lambda: calls.append("first"))
        run_after_commit(db_session, lambda: calls.append("second"))
        assert calls == []

        await db_session.commit()

        assert calls == ["first", "second"]

    async def test_dropped_on_rollback(self, db_session: AsyncSession):
        calls: list[str] = []
        await db_session.execute(text("SELECT 1"))
        run_after_commit(db_session, lambda: calls.append("rolled back"))

        await db_session.rollback()
        await db_session.execute(text("SELECT 1"))
        await db_session.commit()

        assert calls == []

    async def test_dropped_when_session_closes_without_commit(
        self, session_maker: async_sessionmaker[AsyncSession]
    ):
        calls: list[str] = []
        async with session_maker() as session:
            await session.execute(text("SELECT 1"))
            run_after_commit(session, lambda: calls.append("closed"))

        assert calls == []
        assert "after_commit_callbacks" not in session.info

    async def test_savepoint_commit_waits_for_outer_commit(
        self, db_session: AsyncSession
    ):
        calls: list[str] = []
        await db_session.execute(text("SELECT 1"))

        async with db_session.begin_nested():
            run_after_commit(db_session, lambda: calls.append("outer"))
        assert calls == []

        await db_session.commit()
        assert calls == ["outer"]

    async def test_failing_callback_is_logged_and_others_still_run(
        self, db_session: AsyncSession, caplog: pytest.LogCaptureFixture
    ):
        calls: list[str] = []

        def broken() -> None:
            raise OSError("disk gone")

        await db_session.execute(text("SELECT 1"))
        run_after_commit(db_session, broken)
        run_after_commit(db_session, lambda: calls.append("after"))

        with caplog.at_level(logging.ERROR, logger="core.database"):
            await db_session.commit()

        assert calls == ["after"]
        assert "db.after_commit.failed" in [r.getMessage() for r in caplog.records]
