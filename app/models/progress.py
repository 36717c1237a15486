"""
Per-user learning progress. One row per user.
"""

from datetime import datetime
from typing import Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import String, Integer, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import TimestampedBase

EMBEDDING_DIMENSIONS = 3


class UserProgress(TimestampedBase):
    __tablename__ = "user_progress"

    user_id: Mapped[str] = mapped_column(String, unique=True, nullable=False, index=True)
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    level_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0", index=True)
    streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    lessons_completed_today: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    activity_embedding: Mapped[Optional[list]] = mapped_column(
        Vector(EMBEDDING_DIMENSIONS), nullable=True
    )
