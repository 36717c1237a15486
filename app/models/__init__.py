"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import TimestampedBase
from .progress import UserProgress, EMBEDDING_DIMENSIONS

__all__ = [
    "TimestampedBase",
    "UserProgress", "EMBEDDING_DIMENSIONS",
]
