"""Admin dashboard endpoints (monthly statistics snapshots)."""

from typing import Annotated

from fastapi import APIRouter, Path, Query, Request

from core.auth import AdminUserId
from core.database import DbSession, DbSessionReadOnly
from core.ratelimit import STATS_REFRESH_LIMIT, limiter
from schemas import DashboardStatsResponse
from services.dashboard_service import (
    get_dashboard_history,
    get_dashboard_stats,
    get_dashboard_stats_for_month,
)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStatsResponse)
@limiter.limit(STATS_REFRESH_LIMIT)
async def dashboard_stats_endpoint(
    request: Request,
    user_id: AdminUserId,
    db: DbSession,
    force: Annotated[bool, Query()] = False,
) -> DashboardStatsResponse:
    """Current month's snapshot. ``force=true`` recomputes it from live data."""
    return await get_dashboard_stats(db, force=force)


@router.get("/stats/history", response_model=list[DashboardStatsResponse])
async def dashboard_history_endpoint(
    user_id: AdminUserId,
    db: DbSessionReadOnly,
) -> list[DashboardStatsResponse]:
    return await get_dashboard_history(db)


@router.get(
    "/stats/{year}/{month}",
    response_model=DashboardStatsResponse | None,
)
async def dashboard_month_endpoint(
    user_id: AdminUserId,
    db: DbSessionReadOnly,
    year: Annotated[int, Path(ge=2000, le=9999)],
    month: Annotated[int, Path(ge=1, le=12)],
) -> DashboardStatsResponse | None:
    """A stored snapshot, or null when nothing was recorded for that month."""
    return await get_dashboard_stats_for_month(db, year, month)
