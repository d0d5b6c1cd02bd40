"""Service statistics engine.

Counters are recomputed by scanning current data on every call; statuses
change from several entry points (step transitions, manual overrides) so no
running counter is kept.

Two health derivations are available and selected by
``Settings.stats_health_mode``:

- ``latest_step`` (default): a service is classified by the status of its
  most recently updated step. Services with no steps count as pending.
- ``service_status``: a service is classified by its own status column.

Both keep pending + in_progress + completed + cancelled == total.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.wide_event import set_wide_event_nested
from models import utcnow
from repositories.client_repository import ClientRepository
from repositories.stats_repository import ServiceStatsRepository
from schemas import ClientStats, ServiceStats

logger = logging.getLogger(__name__)

# Status value -> bucket. Anything unknown is treated as pending.
_BUCKETS: dict[str, str] = {
    "PENDING": "pending",
    "IN_PROGRESS": "in_progress",
    "CONCLUDED": "completed",
    "CANCELLED": "cancelled",
}


@dataclass(frozen=True)
class HealthBreakdown:
    total: int
    pending: int
    in_progress: int
    completed: int
    cancelled: int


def bucket_status_counts(total: int, counts: Mapping[str, int]) -> HealthBreakdown:
    """Fold per-status counts into buckets.

    Services not represented in ``counts`` (e.g. services without steps) are
    added to pending, so the buckets always sum to ``total``.
    """
    buckets = {"pending": 0, "in_progress": 0, "completed": 0, "cancelled": 0}
    for status, count in counts.items():
        buckets[_BUCKETS.get(status, "pending")] += count

    covered = sum(counts.values())
    buckets["pending"] += total - covered

    return HealthBreakdown(total=total, **buckets)


async def latest_step_health_breakdown(db: AsyncSession) -> HealthBreakdown:
    """Classify each service by its most recently updated step (ties: highest id)."""
    repo = ServiceStatsRepository(db)
    total = await repo.count_services()
    counts = await repo.get_latest_step_status_counts()
    return bucket_status_counts(total, counts)


async def service_status_breakdown(db: AsyncSession) -> HealthBreakdown:
    """Classify each service by services.status."""
    repo = ServiceStatsRepository(db)
    total = await repo.count_services()
    counts = await repo.get_service_status_counts()
    return bucket_status_counts(total, counts)


HEALTH_DERIVATIONS: dict[str, Callable[[AsyncSession], Awaitable[HealthBreakdown]]] = {
    "latest_step": latest_step_health_breakdown,
    "service_status": service_status_breakdown,
}


def start_of_week(now: datetime) -> datetime:
    """Monday 00:00 UTC of the ISO week containing ``now``."""
    today = now.astimezone(UTC).date()
    monday = today - timedelta(days=today.weekday())
    return datetime.combine(monday, time.min, tzinfo=UTC)


def start_of_month(now: datetime) -> datetime:
    today = now.astimezone(UTC).date()
    return datetime.combine(today.replace(day=1), time.min, tzinfo=UTC)


async def compute_service_stats(
    db: AsyncSession,
    *,
    now: datetime | None = None,
    mode: str | None = None,
) -> ServiceStats:
    """Full service counter set at ``now`` (defaults to the current UTC time)."""
    now = now or utcnow()
    mode = mode or get_settings().stats_health_mode
    derivation = HEALTH_DERIVATIONS.get(mode)
    if derivation is None:
        raise ValueError(f"Unknown stats health mode: {mode}")

    health = await derivation(db)

    repo = ServiceStatsRepository(db)
    overdue = await repo.count_overdue_services(now)
    this_week = await repo.count_services_created_between(start_of_week(now), now)
    this_month = await repo.count_services_created_between(start_of_month(now), now)

    stats = ServiceStats(
        total=health.total,
        pending=health.pending,
        in_progress=health.in_progress,
        completed=health.completed,
        cancelled=health.cancelled,
        overdue=overdue,
        this_week=this_week,
        this_month=this_month,
    )
    set_wide_event_nested("stats", mode=mode, total=stats.total)
    logger.debug("stats.services.computed", extra={"mode": mode, "total": stats.total})
    return stats


async def compute_client_stats(
    db: AsyncSession, *, now: datetime | None = None
) -> ClientStats:
    now = now or utcnow()
    repo = ClientRepository(db)
    return ClientStats(
        total=await repo.count_all(),
        new_this_month=await repo.count_created_since(start_of_month(now)),
    )
