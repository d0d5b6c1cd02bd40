"""Repository utility functions for common database operations."""

import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sqlalchemy import and_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from core.logger import get_logger
from core.wide_event import set_wide_event_fields

logger = get_logger(__name__)

# Threshold for logging slow queries (milliseconds)
SLOW_QUERY_THRESHOLD_MS = 500

P = ParamSpec("P")
R = TypeVar("R")


def log_slow_query(
    operation_name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator to record slow repository operations and errors on the wide event.

    Usage:
        @log_slow_query("count_overdue_services")
        async def count_overdue(self, now: datetime) -> int:
            ...
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                duration_ms = (time.perf_counter() - start_time) * 1000
                if duration_ms > SLOW_QUERY_THRESHOLD_MS:
                    logger.warning(
                        "db.query.slow",
                        operation=operation_name,
                        duration_ms=round(duration_ms, 2),
                    )
                    set_wide_event_fields(
                        db_slow_query=True,
                        db_operation=operation_name,
                        db_duration_ms=round(duration_ms, 2),
                    )
                return result
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                set_wide_event_fields(
                    db_query_error=True,
                    db_operation=operation_name,
                    db_duration_ms=round(duration_ms, 2),
                    db_error=str(e),
                    db_error_type=type(e).__name__,
                )
                raise

        return wrapper

    return decorator


async def upsert_on_conflict(
    db: AsyncSession,
    model: type,
    values: dict[str, Any],
    index_elements: list[str],
    update_fields: list[str],
) -> None:
    """Dialect-aware INSERT ... ON CONFLICT DO UPDATE.

    PostgreSQL and SQLite use native upserts; other dialects fall back to
    select-then-update.

    Note:
        Does NOT commit. Caller owns the transaction.

    Warning:
        Column.onupdate is NOT applied during ON CONFLICT DO UPDATE, so
        include 'updated_at' in both `values` and `update_fields`.
    """
    update_set = {field: values[field] for field in update_fields if field in values}
    if not update_set:
        raise ValueError(
            f"No valid update fields: update_fields={update_fields} "
            f"but values only contains keys {list(values.keys())}"
        )

    bind = db.get_bind()
    dialect_name = bind.dialect.name if bind is not None else ""

    if dialect_name in ("postgresql", "sqlite"):
        insert = pg_insert if dialect_name == "postgresql" else sqlite_insert
        stmt = insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=index_elements,
            set_=update_set,
        )
        await db.execute(stmt)
        return

    conditions = [getattr(model, elem) == values[elem] for elem in index_elements]
    result = await db.execute(select(model).where(and_(*conditions)))
    existing = result.scalar_one_or_none()

    if existing:
        for field, value in update_set.items():
            setattr(existing, field, value)
    else:
        db.add(model(**values))
    await db.flush()
