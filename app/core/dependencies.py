"""
FastAPI dependencies. Injected into route handlers.
"""

from datetime import datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import AuthenticatedUser, get_current_user
from .config import get_settings
from .database import get_db as _get_db
from .errors import AuthorizationError
from .flags import get_flags
from ..services.progress_store import ProgressStore


async def get_db() -> AsyncSession:
    """Yields an async DB session per request."""
    async for session in _get_db():
        yield session


async def get_user(
    authorization: str = Header(default=""),
) -> AuthenticatedUser:
    """
    Resolve authenticated user from Authorization header.
    Returns dev user if FF_USE_AUTH=false.
    """
    return await get_current_user(authorization)


async def require_owner(
    user_id: str,
    user: AuthenticatedUser = Depends(get_user),
) -> AuthenticatedUser:
    """The caller may only touch the record keyed by their own identity."""
    if user.user_id != user_id:
        raise AuthorizationError("Forbidden: You can only access your own progress.")
    return user


async def get_store(db: AsyncSession = Depends(get_db)) -> ProgressStore:
    return ProgressStore(db, use_vector_search=get_flags().use_vector_search)


def get_clock() -> datetime:
    """Request time. Overridden in tests."""
    return datetime.now(timezone.utc)


def get_activity_timezone() -> Optional[tzinfo]:
    """Zone that defines day boundaries. None → server local time."""
    name = get_settings().activity_timezone
    return ZoneInfo(name) if name else None
