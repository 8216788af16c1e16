"""
Unit tests for the lesson domain model.

These tests verify the core business logic without touching
external services (no API calls, no database, no file system).

Testing philosophy:
- Test behavior, not implementation
- Each test should have a clear "given/when/then" structure
- Use descriptive names that explain what we're testing
- Prefer real objects over mocks where practical
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from skating_scheduler.core.lessons.models import (
    COACH_COLORS,
    COACHES,
    DEFAULT_DURATION,
    FALLBACK_COLOR,
    RINKS,
    Lesson,
    build_compact_title,
    build_title,
    coach_color,
)


def _lesson(**overrides) -> Lesson:
    start = datetime(2024, 3, 1, 14, 0, tzinfo=timezone.utc)
    values = dict(
        student="Amy",
        coach="Silvia",
        rink="Den",
        start=start,
        end=start + timedelta(minutes=30),
    )
    values.update(overrides)
    return Lesson(**values)


# ---------------------------------------------------------------------------
# Titles and Colors
# ---------------------------------------------------------------------------

class TestTitles:
    """Tests for the derived calendar labels."""

    def test_title_format(self):
        """Calendar label is 'Student - Coach (Rink)'."""
        assert build_title("Amy", "Silvia", "Den") == "Amy - Silvia (Den)"

    def test_compact_title_drops_coach(self):
        """Narrow screens show only student and rink."""
        assert build_compact_title("Amy", "Den") == "Amy (Den)"

    def test_lesson_title_follows_fields(self):
        """Title is derived on read, so changing a field changes the title."""
        lesson = _lesson()
        moved = Lesson(
            student=lesson.student,
            coach="John",
            rink="Stadium",
            start=lesson.start,
            end=lesson.end,
        )

        assert lesson.title == "Amy - Silvia (Den)"
        assert moved.title == "Amy - John (Stadium)"
        assert moved.compact_title == "Amy (Stadium)"


class TestCoachColors:
    """Tests for coach color lookup."""

    def test_every_coach_has_a_color(self):
        for coach in COACHES:
            assert coach in COACH_COLORS

    def test_colors_are_distinct(self):
        assert len(set(COACH_COLORS.values())) == len(COACH_COLORS)

    def test_unknown_coach_gets_fallback(self):
        """Legacy data may name a coach who has since left."""
        assert coach_color("Dmitri") == FALLBACK_COLOR

    def test_lesson_color_matches_coach(self):
        assert _lesson(coach="Sherry").color == COACH_COLORS["Sherry"]


# ---------------------------------------------------------------------------
# Lesson Value
# ---------------------------------------------------------------------------

class TestLesson:
    """Tests for the Lesson value object."""

    def test_lesson_is_immutable(self):
        """Forms hold copies; nobody should be able to mutate a lesson in place."""
        lesson = _lesson()
        with pytest.raises(FrozenInstanceError):
            lesson.student = "Bob"

    def test_new_lesson_has_no_id(self):
        assert _lesson().id is None

    def test_with_id_returns_copy(self):
        lesson = _lesson()
        stored = lesson.with_id("abc")

        assert stored.id == "abc"
        assert lesson.id is None
        assert stored.title == lesson.title

    def test_duration(self):
        assert _lesson().duration == DEFAULT_DURATION

    def test_default_duration_is_half_hour(self):
        assert DEFAULT_DURATION == timedelta(minutes=30)

    def test_known_rinks(self):
        assert RINKS == ("Stadium", "Mezzanine", "Den")
