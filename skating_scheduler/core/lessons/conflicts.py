"""
Double-booking detection.

A lesson conflicts with another when their time ranges overlap and they
share a student or a coach. Rinks are not part of the rule: two lessons on
the same rink at the same time are normal.

The check is advisory. It runs as an optional validation step of the add
form and says nothing about what happens in the store, so two near
simultaneous adds can both pass it.
"""

from datetime import datetime
from typing import Iterable, Optional

from .models import Lesson


def overlaps(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """
    Half-open interval overlap: [start_a, end_a) and [start_b, end_b).

    A lesson ending at 10:30 does not overlap one starting at 10:30.
    """
    return start_a < end_b and start_b < end_a


def shares_participant(a: Lesson, b: Lesson) -> bool:
    return a.student == b.student or a.coach == b.coach


def find_conflict(
    candidate: Lesson,
    existing: Iterable[Lesson],
) -> Optional[Lesson]:
    """
    Return the first existing lesson the candidate conflicts with.

    Lessons are checked in iteration order, so the same input always
    reports the same conflict. A stored lesson with the candidate's id is
    skipped; it is the lesson being edited, not a rival booking.
    """
    for lesson in existing:
        if candidate.id is not None and lesson.id == candidate.id:
            continue
        if not shares_participant(candidate, lesson):
            continue
        if overlaps(candidate.start, candidate.end, lesson.start, lesson.end):
            return lesson
    return None


class ConflictChecker:
    """
    Opt-in validation step for the add form.

    Wraps a callable returning the current full lesson list, so the check
    always runs against the latest snapshot rather than the one that was
    current when the form opened.
    """

    def __init__(self, lessons_provider) -> None:
        self._lessons_provider = lessons_provider

    def check(self, candidate: Lesson) -> Optional[Lesson]:
        return find_conflict(candidate, self._lessons_provider())
