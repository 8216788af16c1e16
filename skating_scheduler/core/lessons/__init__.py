"""
Lesson scheduling logic.

Contains the lesson model, normalization, conflict detection, the add/edit
form, filters, the edit gate and the live schedule.
"""

from .conflicts import ConflictChecker, find_conflict, overlaps
from .directory import StudentDirectory
from .errors import (
    AuthError,
    ConflictError,
    LessonError,
    LessonNotFoundError,
    PersistenceError,
    ValidationError,
)
from .filters import ALL_COACHES, LessonFilter
from .form import FormMode, FormState, LessonForm
from .gate import AccessGate
from .models import COACHES, RINKS, Lesson
from .normalizer import normalize_lesson, strip_rink_prefix, to_document
from .schedule import Schedule
from .store import LessonStore, StoredRecord, Subscription

__all__ = [
    "ALL_COACHES",
    "AccessGate",
    "AuthError",
    "COACHES",
    "ConflictChecker",
    "ConflictError",
    "FormMode",
    "FormState",
    "Lesson",
    "LessonError",
    "LessonFilter",
    "LessonForm",
    "LessonNotFoundError",
    "LessonStore",
    "PersistenceError",
    "RINKS",
    "Schedule",
    "StoredRecord",
    "StudentDirectory",
    "Subscription",
    "ValidationError",
    "find_conflict",
    "normalize_lesson",
    "overlaps",
    "strip_rink_prefix",
    "to_document",
]
