"""
Progress store: create, fetch, replace, leaderboard page and similarity search
over the user_progress table.

Every method runs on the request's AsyncSession. Database failures surface as
UpstreamError; duplicate creates as ConflictError.
"""

import logging
import math
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import ConflictError, NotFoundError, UpstreamError
from ..models.progress import UserProgress

logger = logging.getLogger(__name__)


@contextmanager
def _upstream(message: str):
    """Re-raise database failures as UpstreamError with the driver message."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("%s: %s", message, e)
        raise UpstreamError(message, details=str(getattr(e, "orig", None) or e))


def rank_by_distance(
    query: list[float],
    candidates: list[tuple[str, list[float]]],
    match_count: int,
    match_threshold: float,
) -> list[dict]:
    """L2 nearest neighbours in Python. Same ordering as the SQL path."""
    scored = []
    for user_id, vector in candidates:
        if vector is None:
            continue
        distance = math.dist(query, [float(x) for x in vector])
        if distance <= match_threshold:
            scored.append({"user_id": user_id, "distance": distance})

    scored.sort(key=lambda m: (m["distance"], m["user_id"]))
    return scored[:match_count]


class ProgressStore:
    def __init__(self, db: AsyncSession, use_vector_search: bool = True):
        self.db = db
        self.use_vector_search = use_vector_search

    async def create_if_absent(self, user_id: str) -> UserProgress:
        record = UserProgress(user_id=user_id)
        try:
            self.db.add(record)
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Progress record for this user already exists.")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to create progress for %s: %s", user_id, e)
            raise UpstreamError("Failed to create user progress record", details=str(e))

        with _upstream("Failed to create user progress record"):
            await self.db.refresh(record)

        logger.info("Created progress record for %s", user_id)
        return record

    async def fetch_by_user_id(self, user_id: str) -> UserProgress:
        with _upstream("Failed to retrieve user progress"):
            result = await self.db.execute(
                select(UserProgress).where(UserProgress.user_id == user_id)
            )
            record = result.scalar_one_or_none()

        if record is None:
            raise NotFoundError("User progress not found")
        return record

    async def replace(
        self,
        user_id: str,
        fields: dict,
        expected_updated_at: Optional[datetime] = None,
    ) -> UserProgress:
        """
        Overwrite the given columns. With `expected_updated_at` the write only
        lands if the row is unchanged since it was read.
        """
        stmt = (
            update(UserProgress)
            .where(UserProgress.user_id == user_id)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        if expected_updated_at is not None:
            stmt = stmt.where(UserProgress.updated_at == expected_updated_at)

        with _upstream("Failed to update user progress"):
            result = await self.db.execute(stmt)

        if result.rowcount == 0:
            if expected_updated_at is not None:
                with _upstream("Failed to update user progress"):
                    exists = await self.db.scalar(
                        select(UserProgress.id).where(UserProgress.user_id == user_id)
                    )
                if exists is not None:
                    raise ConflictError("Progress record was modified concurrently, retry the update.")
            raise NotFoundError("User progress not found, cannot update.")

        with _upstream("Failed to update user progress"):
            refreshed = await self.db.execute(
                select(UserProgress)
                .where(UserProgress.user_id == user_id)
                .execution_options(populate_existing=True)
            )
            return refreshed.scalar_one()

    async def leaderboard(self, page: int, limit: int) -> tuple[list[UserProgress], int]:
        """One page ordered by total_xp desc, user_id asc. Returns (rows, total)."""
        offset = (page - 1) * limit

        with _upstream("Failed to retrieve leaderboard"):
            total = await self.db.scalar(select(func.count()).select_from(UserProgress))
            result = await self.db.execute(
                select(UserProgress)
                .order_by(UserProgress.total_xp.desc(), UserProgress.user_id.asc())
                .offset(offset)
                .limit(limit)
            )
            rows = list(result.scalars().all())

        return rows, total or 0

    async def find_similar(
        self,
        user_id: str,
        match_count: int = 5,
        match_threshold: float = 1.0,
    ) -> list[dict]:
        """Nearest users by L2 distance between activity embeddings, excluding self."""
        with _upstream("Failed to find similar users"):
            result = await self.db.execute(
                select(UserProgress.activity_embedding).where(UserProgress.user_id == user_id)
            )
            row = result.one_or_none()

        if row is None:
            raise NotFoundError("Target user progress not found.")

        query = row[0]
        if query is None:
            raise NotFoundError("Target user does not have an activity embedding for comparison.")
        query = [float(x) for x in query]

        if not self.use_vector_search:
            with _upstream("Failed to find similar users"):
                candidates = await self.db.execute(
                    select(UserProgress.user_id, UserProgress.activity_embedding).where(
                        UserProgress.user_id != user_id,
                        UserProgress.activity_embedding.is_not(None),
                    )
                )
            return rank_by_distance(query, candidates.all(), match_count, match_threshold)

        distance = UserProgress.activity_embedding.l2_distance(query)
        with _upstream("Failed to find similar users"):
            result = await self.db.execute(
                select(UserProgress.user_id, distance.label("distance"))
                .where(
                    UserProgress.user_id != user_id,
                    UserProgress.activity_embedding.is_not(None),
                    distance <= match_threshold,
                )
                .order_by(distance.asc(), UserProgress.user_id.asc())
                .limit(match_count)
            )
            return [
                {"user_id": uid, "distance": float(dist)}
                for uid, dist in result.all()
            ]
