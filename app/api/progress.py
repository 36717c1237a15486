"""
Progress API.

POST /progress/                   — Create the caller's progress record
GET  /progress/leaderboard        — Paginated leaderboard by total XP
GET  /progress/similar/{user_id}  — Users with the closest activity embedding
GET  /progress/{user_id}          — Get the caller's progress
PUT  /progress/{user_id}          — Update the caller's progress (streak logic)
"""

import logging
from datetime import datetime, tzinfo
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ..core.auth import AuthenticatedUser
from ..core.config import get_settings
from ..core.dependencies import (
    get_activity_timezone,
    get_clock,
    get_store,
    get_user,
    require_owner,
)
from ..core.errors import AuthorizationError, ValidationError
from ..core.flags import get_flags
from ..models.progress import UserProgress
from ..services.progress_engine import ProgressSnapshot, compute_next_state
from ..services.progress_store import ProgressStore

logger = logging.getLogger(__name__)

progress_router = APIRouter(prefix="/progress", tags=["progress"])

MAX_LEADERBOARD_LIMIT = 100


class CreateProgressRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")


class ProgressUpdateRequest(BaseModel):
    """Fields a client may set. streak_days and last_activity_at are server-managed."""

    model_config = ConfigDict(extra="forbid")

    current_level: Optional[int] = Field(default=None, ge=0)
    level_xp: Optional[int] = Field(default=None, ge=0)
    total_xp: Optional[int] = Field(default=None, ge=0)
    lessons_completed_today: Optional[int] = Field(default=None, ge=0)


class ProgressOut(BaseModel):
    id: Optional[str] = None
    user_id: str
    current_level: int
    level_xp: int
    total_xp: int
    streak_days: int
    lessons_completed_today: int
    last_activity_at: str
    activity_embedding: Optional[list[float]] = None
    created_at: str
    updated_at: str


class LeaderboardEntry(BaseModel):
    user_id: str
    current_level: int
    total_xp: int


class LeaderboardResponse(BaseModel):
    data: list[LeaderboardEntry]
    total: int
    page: int
    limit: int


class SimilarUser(BaseModel):
    user_id: str
    distance: float


class SimilarUsersResponse(BaseModel):
    similar_users: list[SimilarUser]


def _isoformat(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def _progress_out(record: UserProgress) -> ProgressOut:
    embedding = record.activity_embedding
    return ProgressOut(
        id=record.id,
        user_id=record.user_id,
        current_level=record.current_level,
        level_xp=record.level_xp,
        total_xp=record.total_xp,
        streak_days=record.streak_days,
        lessons_completed_today=record.lessons_completed_today,
        last_activity_at=_isoformat(record.last_activity_at),
        activity_embedding=[float(x) for x in embedding] if embedding is not None else None,
        created_at=_isoformat(record.created_at),
        updated_at=_isoformat(record.updated_at),
    )


# ── Create ───────────────────────────────────────────────────────────

@progress_router.post("/", response_model=ProgressOut, status_code=201)
async def create_progress(
    request: CreateProgressRequest,
    user: AuthenticatedUser = Depends(get_user),
    store: ProgressStore = Depends(get_store),
):
    """Create a progress record for the caller. One record per user."""
    if not request.user_id:
        raise ValidationError("userId is required")

    if request.user_id != user.user_id:
        raise AuthorizationError("Forbidden: You can only create a progress record for yourself.")

    record = await store.create_if_absent(request.user_id)
    return _progress_out(record)


# ── Leaderboard ──────────────────────────────────────────────────────

@progress_router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    page: int = 1,
    limit: int = 10,
    store: ProgressStore = Depends(get_store),
):
    """Users ranked by total XP. Ties broken by user_id for stable pages."""
    if page < 1:
        raise ValidationError("Page number must be 1 or greater.")
    if limit < 1 or limit > MAX_LEADERBOARD_LIMIT:
        raise ValidationError(f"Limit must be between 1 and {MAX_LEADERBOARD_LIMIT}.")

    rows, total = await store.leaderboard(page, limit)

    return LeaderboardResponse(
        data=[
            LeaderboardEntry(
                user_id=r.user_id,
                current_level=r.current_level,
                total_xp=r.total_xp,
            )
            for r in rows
        ],
        total=total,
        page=page,
        limit=limit,
    )


# ── Similar users ────────────────────────────────────────────────────

@progress_router.get("/similar/{user_id}", response_model=SimilarUsersResponse)
async def find_similar_users(
    user_id: str,
    store: ProgressStore = Depends(get_store),
):
    """Nearest users by activity embedding. Open to any authenticated caller."""
    settings = get_settings()
    matches = await store.find_similar(
        user_id,
        match_count=settings.similarity_match_count,
        match_threshold=settings.similarity_match_threshold,
    )
    return SimilarUsersResponse(similar_users=[SimilarUser(**m) for m in matches])


# ── Read / update own record ─────────────────────────────────────────

@progress_router.get("/{user_id}", response_model=ProgressOut)
async def get_progress(
    user_id: str,
    user: AuthenticatedUser = Depends(require_owner),
    store: ProgressStore = Depends(get_store),
):
    """Get the caller's progress record."""
    record = await store.fetch_by_user_id(user_id)
    return _progress_out(record)


@progress_router.put("/{user_id}", response_model=ProgressOut)
async def update_progress(
    user_id: str,
    request: ProgressUpdateRequest,
    user: AuthenticatedUser = Depends(require_owner),
    store: ProgressStore = Depends(get_store),
    now: datetime = Depends(get_clock),
    tz: Optional[tzinfo] = Depends(get_activity_timezone),
):
    """
    Apply a partial update. Recomputes the daily lesson counter, streak and
    activity embedding from the stored state.
    """
    payload = request.model_dump(exclude_unset=True, exclude_none=True)
    if not payload:
        raise ValidationError("Request body must contain fields to update.")

    current = await store.fetch_by_user_id(user_id)
    next_state = compute_next_state(ProgressSnapshot.from_record(current), payload, now, tz)

    expected = current.updated_at if get_flags().use_optimistic_locking else None
    record = await store.replace(user_id, next_state.to_update_fields(), expected_updated_at=expected)
    return _progress_out(record)
