"""
Live, normalized view of the lesson store.

The Schedule subscribes to the store, normalizes every snapshot it
receives and keeps the result as the full in-memory lesson list. Each
snapshot replaces the list wholesale; nothing patches individual lessons,
so readers only ever see one complete snapshot or the next.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from .conflicts import ConflictChecker
from .filters import LessonFilter
from .models import Lesson
from .normalizer import normalize_lesson
from .store import LessonStore, StoredRecord, Subscription

logger = logging.getLogger(__name__)


class Schedule:
    """Current lessons, kept up to date by a store subscription."""

    def __init__(
        self,
        store: LessonStore,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._lessons: tuple[Lesson, ...] = ()
        self._subscription: Optional[Subscription] = None
        self._snapshot_count = 0

    @property
    def lessons(self) -> tuple[Lesson, ...]:
        return self._lessons

    @property
    def is_live(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def snapshot_count(self) -> int:
        """How many snapshots have been applied since start."""
        return self._snapshot_count

    def start(self) -> None:
        if self.is_live:
            return
        self._subscription = self._store.subscribe(self._apply_snapshot)
        logger.info("Schedule subscribed to lesson store")

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
            logger.info("Schedule unsubscribed from lesson store")

    def get(self, lesson_id: str) -> Optional[Lesson]:
        for lesson in self._lessons:
            if lesson.id == lesson_id:
                return lesson
        return None

    def visible(self, lesson_filter: LessonFilter) -> list[Lesson]:
        return lesson_filter.apply(self._lessons)

    def conflict_checker(self) -> ConflictChecker:
        return ConflictChecker(lambda: self._lessons)

    def _apply_snapshot(self, records: list[StoredRecord]) -> None:
        now = self._clock() if self._clock else None
        self._lessons = tuple(
            normalize_lesson(record.id, record.data, now=now) for record in records
        )
        self._snapshot_count += 1
        logger.debug(
            "Applied lesson snapshot",
            extra={"lesson_count": len(self._lessons)}
        )
