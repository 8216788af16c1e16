"""
Domain models for lesson scheduling.

A Lesson is the only entity. Its title and color are derived from the
canonical fields every time they're read, so there is nothing to keep in
sync when a student, coach or rink changes.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional


COACHES: tuple[str, ...] = ("Silvia", "John", "Sherry")
RINKS: tuple[str, ...] = ("Stadium", "Mezzanine", "Den")

DEFAULT_COACH = "Silvia"
DEFAULT_RINK = "Den"

# Lessons default to half an hour
DEFAULT_DURATION = timedelta(minutes=30)

COACH_COLORS: dict[str, str] = {
    "Silvia": "#3b82f6",  # blue
    "John": "#22c55e",    # green
    "Sherry": "#f43f5e",  # rose
}
FALLBACK_COLOR = "#6366f1"  # indigo


def build_title(student: str, coach: str, rink: str) -> str:
    """Calendar label: "Amy - Silvia (Den)"."""
    return f"{student} - {coach} ({rink})"


def build_compact_title(student: str, rink: str) -> str:
    """Narrow-screen label, coach is conveyed by color alone."""
    return f"{student} ({rink})"


def coach_color(coach: str) -> str:
    return COACH_COLORS.get(coach, FALLBACK_COLOR)


@dataclass(frozen=True)
class Lesson:
    """
    One scheduled lesson between a student and a coach at a rink.

    Frozen so that anything holding a lesson (an open edit form, a
    rendered list) holds a value, not a live reference into the schedule.
    `id` is None until the store has assigned one.
    """
    student: str
    coach: str
    rink: str
    start: datetime
    end: datetime
    id: Optional[str] = None

    @property
    def title(self) -> str:
        return build_title(self.student, self.coach, self.rink)

    @property
    def compact_title(self) -> str:
        return build_compact_title(self.student, self.rink)

    @property
    def color(self) -> str:
        return coach_color(self.coach)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def with_id(self, lesson_id: str) -> "Lesson":
        return replace(self, id=lesson_id)
