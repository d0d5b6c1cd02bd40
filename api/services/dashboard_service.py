"""Monthly dashboard snapshots.

ARCHITECTURE:
- get_dashboard_stats() serves the current UTC month's snapshot from the
  dashboard_stats table, computing and upserting it on a miss or when forced.
- Historical months are only ever read. Nothing here recomputes a past month.
- A short in-memory TTL cache sits in front of the table so rapid dashboard
  reloads do not repeat the SELECT. A recomputed snapshot enters the cache
  only after its upsert commits, so a rolled-back write is never served.
"""

import logging
from functools import partial
from datetime import datetime

from cachetools import TTLCache
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import get_settings
from core.database import run_after_commit
from core.wide_event import set_wide_event_fields
from models import DashboardStats, utcnow
from repositories.dashboard_stats_repository import DashboardStatsRepository
from schemas import ClientStats, DashboardStatsResponse, ServiceStats
from services.errors import ValidationError
from services.stats_service import compute_client_stats, compute_service_stats

logger = logging.getLogger(__name__)

_local_cache: TTLCache[tuple[int, int], DashboardStatsResponse] = TTLCache(
    maxsize=24, ttl=get_settings().stats_cache_ttl_seconds
)


def clear_dashboard_cache() -> None:
    _local_cache.clear()


def _cache_snapshot(key: tuple[int, int], result: DashboardStatsResponse) -> None:
    _local_cache[key] = result


def snapshot_to_response(row: DashboardStats) -> DashboardStatsResponse:
    return DashboardStatsResponse(
        year=row.year,
        month=row.month,
        clients=ClientStats(
            total=row.clients_total,
            new_this_month=row.clients_new_this_month,
        ),
        services=ServiceStats(
            total=row.services_total,
            pending=row.services_pending,
            in_progress=row.services_in_progress,
            completed=row.services_completed,
            cancelled=row.services_cancelled,
            overdue=row.services_overdue,
            this_week=row.services_this_week,
            this_month=row.services_this_month,
        ),
    )


def _snapshot_counts(
    clients: ClientStats, services: ServiceStats
) -> dict[str, int]:
    return {
        "clients_total": clients.total,
        "clients_new_this_month": clients.new_this_month,
        "services_total": services.total,
        "services_pending": services.pending,
        "services_in_progress": services.in_progress,
        "services_completed": services.completed,
        "services_cancelled": services.cancelled,
        "services_overdue": services.overdue,
        "services_this_week": services.this_week,
        "services_this_month": services.this_month,
    }


async def _recompute_current_month(
    db: AsyncSession, now: datetime
) -> DashboardStatsResponse:
    clients = await compute_client_stats(db, now=now)
    services = await compute_service_stats(db, now=now)

    await DashboardStatsRepository(db).upsert(
        now.year, now.month, _snapshot_counts(clients, services)
    )

    result = DashboardStatsResponse(
        year=now.year, month=now.month, clients=clients, services=services
    )
    run_after_commit(db, partial(_cache_snapshot, (now.year, now.month), result))

    logger.info(
        "dashboard.stats.recomputed",
        extra={
            "year": now.year,
            "month": now.month,
            "services_total": services.total,
            "clients_total": clients.total,
        },
    )
    return result


async def get_dashboard_stats(
    db: AsyncSession, *, force: bool = False, now: datetime | None = None
) -> DashboardStatsResponse:
    """Current month's snapshot; computed and stored on a miss or when forced."""
    now = now or utcnow()
    key = (now.year, now.month)
    set_wide_event_fields(dashboard_force=force)

    if not force:
        cached = _local_cache.get(key)
        if cached is not None:
            return cached

        row = await DashboardStatsRepository(db).get(*key)
        if row is not None:
            result = snapshot_to_response(row)
            _local_cache[key] = result
            return result

    return await _recompute_current_month(db, now)


async def get_dashboard_stats_for_month(
    db: AsyncSession, year: int, month: int
) -> DashboardStatsResponse | None:
    """A stored snapshot, or None. Never computes."""
    if not 1 <= month <= 12:
        raise ValidationError(f"Month must be between 1 and 12, got {month}")

    cached = _local_cache.get((year, month))
    if cached is not None:
        return cached

    row = await DashboardStatsRepository(db).get(year, month)
    if row is None:
        return None

    result = snapshot_to_response(row)
    _local_cache[(year, month)] = result
    return result


async def get_dashboard_history(db: AsyncSession) -> list[DashboardStatsResponse]:
    """Every stored snapshot, most recent month first."""
    rows = await DashboardStatsRepository(db).list_all()
    return [snapshot_to_response(row) for row in rows]


async def refresh_dashboard_stats(
    session_maker: async_sessionmaker[AsyncSession],
) -> DashboardStatsResponse:
    """Recompute the current month in a dedicated session and commit.

    Used by the CLI; request handlers go through get_dashboard_stats().
    """
    async with session_maker() as db:
        result = await _recompute_current_month(db, utcnow())
        await db.commit()
    return result
