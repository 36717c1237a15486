"""
Progress update engine.

Computes the next state of a progress record from its current state, a sparse
update payload and the request time: daily lesson counter, streak and the
activity embedding. Pure; persistence is done by the caller.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone, tzinfo
from typing import Any, Optional

from .dates import are_consecutive_days, is_same_day

logger = logging.getLogger(__name__)

# Placeholder activity vectors. Dimensions must match the vector(3) column.
# These stand in for a real embedding model.
LESSON_COMPLETION_VECTOR = [0.8, 0.1, 0.1]
XP_GAIN_VECTOR = [0.1, 0.8, 0.1]
GENERAL_ACTIVITY_VECTOR = [0.3, 0.3, 0.3]

# Gain over the stored total_xp that counts as an XP-driven activity
XP_GAIN_THRESHOLD = 20

UPDATABLE_FIELDS = ("current_level", "level_xp", "total_xp", "lessons_completed_today")


@dataclass
class ProgressSnapshot:
    """In-memory view of one user_progress row."""

    user_id: str
    last_activity_at: datetime
    current_level: int = 1
    level_xp: int = 0
    total_xp: int = 0
    streak_days: int = 0
    lessons_completed_today: int = 0
    activity_embedding: Optional[list[float]] = field(default=None)

    @classmethod
    def from_record(cls, record: Any) -> "ProgressSnapshot":
        embedding = record.activity_embedding
        last_activity_at = record.last_activity_at
        # SQLite hands back naive values; the service always writes UTC
        if last_activity_at.tzinfo is None:
            last_activity_at = last_activity_at.replace(tzinfo=timezone.utc)
        return cls(
            user_id=record.user_id,
            last_activity_at=last_activity_at,
            current_level=record.current_level,
            level_xp=record.level_xp,
            total_xp=record.total_xp,
            streak_days=record.streak_days,
            lessons_completed_today=record.lessons_completed_today,
            # pgvector hands back numpy arrays
            activity_embedding=[float(x) for x in embedding] if embedding is not None else None,
        )

    def to_update_fields(self) -> dict:
        """Column values to persist. user_id is immutable and left out."""
        return {
            "current_level": self.current_level,
            "level_xp": self.level_xp,
            "total_xp": self.total_xp,
            "streak_days": self.streak_days,
            "lessons_completed_today": self.lessons_completed_today,
            "last_activity_at": self.last_activity_at,
            "activity_embedding": self.activity_embedding,
        }


def classify_activity(current: ProgressSnapshot, payload: dict) -> Optional[list[float]]:
    """Pick the activity vector for an update. First matching rule wins."""
    lessons = payload.get("lessons_completed_today")
    if lessons is not None and lessons > current.lessons_completed_today:
        return list(LESSON_COMPLETION_VECTOR)

    total_xp = payload.get("total_xp")
    if total_xp is not None and total_xp > current.total_xp + XP_GAIN_THRESHOLD:
        return list(XP_GAIN_VECTOR)

    if payload:
        return list(GENERAL_ACTIVITY_VECTOR)

    if current.activity_embedding is None:
        return None
    return list(current.activity_embedding)


def compute_next_state(
    current: ProgressSnapshot,
    payload: dict,
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> ProgressSnapshot:
    """
    Apply `payload` (only the supplied fields) to `current` at time `now`.

    Same calendar day: the lesson counter is kept unless supplied and the
    streak is untouched. New day: the counter resets to the supplied value or
    0, and the streak grows by one after a consecutive day, restarts at 1
    after a gap, or breaks to 0 when no lesson was completed.
    """
    supplied = {k: v for k, v in payload.items() if k in UPDATABLE_FIELDS and v is not None}

    next_state = replace(current, **supplied)
    next_state.last_activity_at = now

    same_day = is_same_day(now, current.last_activity_at, tz)
    lessons = supplied.get("lessons_completed_today")

    if same_day:
        next_state.lessons_completed_today = (
            lessons if lessons is not None else current.lessons_completed_today
        )
    else:
        next_state.lessons_completed_today = lessons if lessons is not None else 0

        if next_state.lessons_completed_today > 0:
            if are_consecutive_days(now, current.last_activity_at, tz):
                next_state.streak_days = current.streak_days + 1
            else:
                next_state.streak_days = 1
        else:
            next_state.streak_days = 0

        if next_state.streak_days != current.streak_days:
            logger.info(
                "Streak for %s: %d -> %d",
                current.user_id, current.streak_days, next_state.streak_days,
            )

    next_state.activity_embedding = classify_activity(current, supplied)
    return next_state
