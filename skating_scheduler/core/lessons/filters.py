"""
Coach and student filters for the calendar view.

Filtering only decides what is displayed. Forms and the conflict checker
always work against the full lesson list.
"""

from dataclasses import dataclass, replace
from typing import Iterable

from .models import Lesson
from .storage import COACH_FILTER_KEY, STUDENT_FILTER_KEY, ClientStorage

ALL_COACHES = "All"


@dataclass(frozen=True)
class LessonFilter:
    """
    Two predicates ANDed together.

    coach: exact match, or "All" to show everyone.
    student: case-insensitive substring of the trimmed text; empty matches
    every lesson.
    """
    coach: str = ALL_COACHES
    student: str = ""

    def matches_coach(self, lesson: Lesson) -> bool:
        return self.coach == ALL_COACHES or lesson.coach == self.coach

    def matches_student(self, lesson: Lesson) -> bool:
        needle = self.student.strip().lower()
        if not needle:
            return True
        return needle in lesson.student.lower()

    def matches(self, lesson: Lesson) -> bool:
        return self.matches_coach(lesson) and self.matches_student(lesson)

    def apply(self, lessons: Iterable[Lesson]) -> list[Lesson]:
        return [lesson for lesson in lessons if self.matches(lesson)]

    def toggle_coach(self, coach: str) -> "LessonFilter":
        """Legend behavior: pick a coach, or go back to All if already picked."""
        return replace(self, coach=ALL_COACHES if self.coach == coach else coach)

    @property
    def is_active(self) -> bool:
        return self.coach != ALL_COACHES or bool(self.student.strip())


def load_filter(storage: ClientStorage) -> LessonFilter:
    return LessonFilter(
        coach=storage.get(COACH_FILTER_KEY) or ALL_COACHES,
        student=storage.get(STUDENT_FILTER_KEY) or "",
    )


def save_filter(storage: ClientStorage, lesson_filter: LessonFilter) -> None:
    storage.set(COACH_FILTER_KEY, lesson_filter.coach)
    storage.set(STUDENT_FILTER_KEY, lesson_filter.student)


def student_suggestions(lessons: Iterable[Lesson]) -> list[str]:
    """Distinct student names on the schedule, alphabetized, for the filter box."""
    names = {lesson.student.strip() for lesson in lessons if lesson.student.strip()}
    return sorted(names, key=str.casefold)
