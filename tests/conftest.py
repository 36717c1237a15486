"""Shared test fixtures for the Progress API test suite."""

import pytest
from datetime import datetime, timedelta, timezone
from httpx import AsyncClient, ASGITransport

from app.core.auth import AuthenticatedUser
from app.core.config import get_settings
from app.core.dependencies import get_activity_timezone, get_clock, get_store, get_user
from app.core.errors import ConflictError, NotFoundError
from app.core.flags import get_flags
from app.factory import create_app
from app.models.progress import UserProgress
from app.services.progress_store import rank_by_distance


# ── In-memory store ──────────────────────────────────────────────────────

class FakeProgressStore:
    """Same surface as ProgressStore, backed by a dict of transient rows."""

    def __init__(self):
        self.records: dict[str, UserProgress] = {}
        self.replace_calls: list[dict] = []
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def seed(self, user_id: str, **fields) -> UserProgress:
        stamp = self._tick()
        values = {
            "id": f"id-{user_id}",
            "user_id": user_id,
            "current_level": 1,
            "level_xp": 0,
            "total_xp": 0,
            "streak_days": 0,
            "lessons_completed_today": 0,
            "last_activity_at": stamp,
            "activity_embedding": None,
            "created_at": stamp,
            "updated_at": stamp,
        }
        values.update(fields)
        record = UserProgress(**values)
        self.records[user_id] = record
        return record

    async def create_if_absent(self, user_id):
        if user_id in self.records:
            raise ConflictError("Progress record for this user already exists.")
        return self.seed(user_id)

    async def fetch_by_user_id(self, user_id):
        if user_id not in self.records:
            raise NotFoundError("User progress not found")
        return self.records[user_id]

    async def replace(self, user_id, fields, expected_updated_at=None):
        self.replace_calls.append(
            {"user_id": user_id, "fields": fields, "expected_updated_at": expected_updated_at}
        )
        record = self.records.get(user_id)
        if record is None:
            raise NotFoundError("User progress not found, cannot update.")
        if expected_updated_at is not None and record.updated_at != expected_updated_at:
            raise ConflictError("Progress record was modified concurrently, retry the update.")
        for key, value in fields.items():
            setattr(record, key, value)
        record.updated_at = self._tick()
        return record

    async def leaderboard(self, page, limit):
        ordered = sorted(self.records.values(), key=lambda r: (-r.total_xp, r.user_id))
        offset = (page - 1) * limit
        return ordered[offset:offset + limit], len(ordered)

    async def find_similar(self, user_id, match_count=5, match_threshold=1.0):
        record = self.records.get(user_id)
        if record is None:
            raise NotFoundError("Target user progress not found.")
        if record.activity_embedding is None:
            raise NotFoundError("Target user does not have an activity embedding for comparison.")
        candidates = [
            (r.user_id, r.activity_embedding)
            for r in self.records.values()
            if r.user_id != user_id
        ]
        return rank_by_distance(record.activity_embedding, candidates, match_count, match_threshold)


class Clock:
    def __init__(self, now: datetime):
        self.now = now


# ── Settings isolation ───────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path):
    """Fresh settings/flags per test, without a developer's .env leaking in."""
    for name in (
        "FF_USE_AUTH", "FF_USE_VECTOR_SEARCH", "FF_USE_OPTIMISTIC_LOCKING",
        "AUTH_JWT_SECRET", "AUTH_ALGORITHM", "AUTH_AUDIENCE", "AUTH_ISSUER", "AUTH_JWKS_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    get_flags.cache_clear()
    yield
    get_settings.cache_clear()
    get_flags.cache_clear()


# ── App + client ─────────────────────────────────────────────────────────

@pytest.fixture
def store():
    return FakeProgressStore()


@pytest.fixture
def clock():
    return Clock(datetime(2024, 3, 11, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def app(store, clock):
    application = create_app()
    application.dependency_overrides[get_store] = lambda: store
    application.dependency_overrides[get_clock] = lambda: clock.now
    application.dependency_overrides[get_activity_timezone] = lambda: timezone.utc
    return application


@pytest.fixture
def as_user(app):
    """Authenticate every request as the given user id."""
    def _as(user_id: str):
        app.dependency_overrides[get_user] = lambda: AuthenticatedUser(user_id=user_id)
    return _as


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
