"""
Repository pattern implementations for Snowflake.

Repositories translate between domain models and database representations.
"""

from .client_storage import ClientStorageRepository
from .lessons import LessonRepository

__all__ = ["ClientStorageRepository", "LessonRepository"]
