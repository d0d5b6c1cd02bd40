"""Session-based authentication dependencies.

The login flow lives outside this service; it stores the authenticated user's
id in the signed session cookie (starlette ``SessionMiddleware``). Routes only
read it back.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from core.database import DbSession
from core.logger import get_logger
from core.wide_event import set_wide_event_fields
from models import UserRole
from repositories.user_repository import UserRepository

logger = get_logger(__name__)


def get_user_id_from_request(request: Request) -> int | None:
    """Authenticated user id from the session, or None."""
    if "session" not in request.scope:
        return None

    raw = request.session.get("user_id")
    if raw is None:
        return None

    try:
        return int(raw)
    except (TypeError, ValueError):
        set_wide_event_fields(auth_error="malformed_session_user_id")
        return None


def require_auth(request: Request) -> int:
    """Raises 401 if not authenticated. Sets request.state.user_id."""
    user_id = get_user_id_from_request(request)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    request.state.user_id = user_id
    set_wide_event_fields(user_id=user_id)
    return user_id


UserId = Annotated[int, Depends(require_auth)]


async def require_admin(user_id: UserId, db: DbSession) -> int:
    """Raises 403 unless the authenticated user is an active admin."""
    user = await UserRepository(db).get_by_id(user_id)
    if user is None or not user.active or user.role != UserRole.ADMIN:
        set_wide_event_fields(auth_error="admin_required")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user_id


AdminUserId = Annotated[int, Depends(require_admin)]
