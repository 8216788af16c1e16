"""
Unit tests for the add/edit lesson form.

The store here is an in-memory fake that records every call, so tests
can assert on what was (or wasn't) written.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from skating_scheduler.core.lessons.conflicts import ConflictChecker
from skating_scheduler.core.lessons.directory import StudentDirectory
from skating_scheduler.core.lessons.errors import (
    ConflictError,
    LessonNotFoundError,
    PersistenceError,
    ValidationError,
)
from skating_scheduler.core.lessons.form import (
    FormMode,
    FormState,
    LessonForm,
    round_to_picker_step,
)
from skating_scheduler.core.lessons.models import Lesson
from skating_scheduler.core.lessons.storage import MemoryStorage

START = datetime(2024, 3, 1, 14, 0, tzinfo=timezone.utc)


class RecordingStore:
    """LessonStore fake that remembers writes and can be told to fail."""

    def __init__(self) -> None:
        self.documents: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.fail_with: Optional[Exception] = None
        self._next_id = 0

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def create(self, document: dict[str, Any]) -> str:
        self.calls.append(("create", document))
        self._maybe_fail()
        self._next_id += 1
        lesson_id = f"lesson-{self._next_id}"
        self.documents[lesson_id] = document
        return lesson_id

    def update(self, lesson_id: str, document: dict[str, Any]) -> None:
        self.calls.append(("update", lesson_id, document))
        self._maybe_fail()
        self.documents[lesson_id] = document

    def delete(self, lesson_id: str) -> None:
        self.calls.append(("delete", lesson_id))
        self._maybe_fail()
        self.documents.pop(lesson_id, None)

    def subscribe(self, callback):
        raise NotImplementedError


class UnwritableStorage(MemoryStorage):
    """Client storage that reads fine but rejects every write."""

    def set(self, key: str, value: str) -> None:
        raise PersistenceError("client storage down")


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def directory() -> StudentDirectory:
    return StudentDirectory(MemoryStorage())


def add_form(store, directory, checker=None) -> LessonForm:
    form = LessonForm.for_add(store, directory, conflict_checker=checker, now=START)
    form.set_student("Amy")
    return form


def stored_lesson(**overrides) -> Lesson:
    values = dict(
        id="existing",
        student="Amy",
        coach="Silvia",
        rink="Den",
        start=START,
        end=START + timedelta(minutes=30),
    )
    values.update(overrides)
    return Lesson(**values)


# ---------------------------------------------------------------------------
# Defaults and Time Coupling
# ---------------------------------------------------------------------------

class TestFormDefaults:
    """Tests for a freshly opened form."""

    def test_add_form_defaults(self, store, directory):
        form = LessonForm.for_add(store, directory, now=START)

        assert form.mode is FormMode.ADD
        assert form.state is FormState.EDITING
        assert form.student == ""
        assert form.coach == "Silvia"
        assert form.rink == "Den"
        assert form.start == START
        assert form.end == START + timedelta(minutes=30)

    def test_add_form_start_is_rounded(self, store, directory):
        """14:08 is closer to 14:15 than to 14:00."""
        form = LessonForm.for_add(store, directory, now=START + timedelta(minutes=8))
        assert form.start == START + timedelta(minutes=15)

    def test_round_to_picker_step(self):
        assert round_to_picker_step(START + timedelta(minutes=7)) == START
        assert round_to_picker_step(START + timedelta(minutes=52)) == START + timedelta(minutes=45)

    def test_edit_form_is_prefilled(self, store, directory):
        lesson = stored_lesson(coach="John", rink="Stadium")
        form = LessonForm.for_edit(store, directory, lesson)

        assert form.mode is FormMode.EDIT
        assert form.lesson_id == "existing"
        assert form.coach == "John"
        assert form.rink == "Stadium"
        assert form.start == lesson.start

    def test_edit_form_needs_id(self, store, directory):
        with pytest.raises(ValueError):
            LessonForm(store, directory, FormMode.EDIT)


class TestTimeCoupling:
    """Tests for the start/end relationship."""

    def test_changing_start_resets_end(self, store, directory):
        """Start 14:00 -> 14:20 puts the end at 14:50."""
        form = add_form(store, directory)
        form.set_start(START + timedelta(minutes=20))

        assert form.end == START + timedelta(minutes=50)

    def test_changing_start_overrides_custom_end(self, store, directory):
        """A manually chosen end is discarded when the start moves."""
        form = add_form(store, directory)
        form.set_end(START + timedelta(hours=2))
        form.set_start(START + timedelta(minutes=20))

        assert form.end == START + timedelta(minutes=50)

    def test_changing_end_keeps_start(self, store, directory):
        form = add_form(store, directory)
        form.set_end(START + timedelta(hours=1))

        assert form.start == START
        assert form.end == START + timedelta(hours=1)

    def test_cleared_start_is_ignored(self, store, directory):
        form = add_form(store, directory)
        form.set_start(None)

        assert form.start == START
        assert form.end == START + timedelta(minutes=30)

    def test_start_accepts_iso_text(self, store, directory):
        form = add_form(store, directory)
        form.set_start("2024-03-01T15:00:00Z")

        assert form.start == START + timedelta(hours=1)
        assert form.end == START + timedelta(minutes=90)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidation:
    """Tests for rejected submissions."""

    def test_whitespace_student_is_rejected(self, store, directory):
        form = add_form(store, directory)
        form.set_student("   ")

        with pytest.raises(ValidationError) as exc_info:
            form.submit()

        assert exc_info.value.reason == ValidationError.EMPTY_STUDENT
        assert form.state is FormState.REJECTED
        assert store.calls == []

    def test_end_equal_to_start_is_rejected(self, store, directory):
        form = add_form(store, directory)
        form.set_end(START)

        with pytest.raises(ValidationError) as exc_info:
            form.submit()

        assert exc_info.value.reason == ValidationError.END_BEFORE_START
        assert store.calls == []

    def test_end_before_start_is_rejected(self, store, directory):
        form = add_form(store, directory)
        form.set_end(START - timedelta(minutes=10))

        with pytest.raises(ValidationError) as exc_info:
            form.submit()

        assert exc_info.value.reason == ValidationError.END_BEFORE_START

    def test_unreadable_time_is_rejected(self, store, directory):
        form = add_form(store, directory)
        form.set_end("not a time")

        with pytest.raises(ValidationError) as exc_info:
            form.submit()

        assert exc_info.value.reason == ValidationError.INVALID_TIME

    def test_rejected_form_can_be_corrected(self, store, directory):
        form = add_form(store, directory)
        form.set_student("")
        with pytest.raises(ValidationError):
            form.submit()

        form.set_student("Amy")
        assert form.state is FormState.EDITING

        lesson = form.submit()
        assert lesson.student == "Amy"
        assert form.state is FormState.SUBMITTED


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------

class TestConflictStep:
    """Tests for the optional double-booking check."""

    def test_conflicting_add_is_rejected(self, store, directory):
        existing = [stored_lesson(student="Bob", coach="Silvia")]
        form = add_form(store, directory, checker=ConflictChecker(lambda: existing))
        form.set_start(START + timedelta(minutes=15))

        with pytest.raises(ConflictError) as exc_info:
            form.submit()

        assert exc_info.value.conflicting.id == "existing"
        assert "Bob - Silvia (Den)" in str(exc_info.value)
        assert form.state is FormState.REJECTED
        assert store.calls == []

    def test_without_checker_overlap_is_saved(self, store, directory):
        """The check is opt-in."""
        form = add_form(store, directory)
        form.submit()

        assert len(store.calls) == 1

    def test_edit_form_skips_conflict_check(self, store, directory):
        lesson = stored_lesson()
        form = LessonForm.for_edit(store, directory, lesson)
        form.set_end(START + timedelta(hours=1))

        form.submit()

        assert store.calls[0][0] == "update"


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

class TestSubmit:
    """Tests for persisting a valid form."""

    def test_add_writes_full_document(self, store, directory):
        form = add_form(store, directory)
        form.set_rink("The Stadium")

        lesson = form.submit()

        assert lesson.id == "lesson-1"
        assert store.documents["lesson-1"] == {
            "title": "Amy - Silvia (Stadium)",
            "start": "2024-03-01T14:00:00+00:00",
            "end": "2024-03-01T14:30:00+00:00",
            "extendedProps": {"student": "Amy", "coach": "Silvia", "rink": "Stadium"},
        }

    def test_student_is_trimmed(self, store, directory):
        form = add_form(store, directory)
        form.set_student("  Amy  ")

        assert form.submit().student == "Amy"

    def test_submit_adds_student_to_directory(self, store, directory):
        form = add_form(store, directory)
        form.set_student("Zoe")
        form.submit()

        assert "Zoe" in directory

    def test_edit_replaces_document(self, store, directory):
        lesson = stored_lesson()
        form = LessonForm.for_edit(store, directory, lesson)
        form.set_coach("Sherry")

        updated = form.submit()

        assert updated.id == "existing"
        assert store.calls[0][0] == "update"
        assert store.documents["existing"]["title"] == "Amy - Sherry (Den)"

    def test_submitted_form_cannot_submit_again(self, store, directory):
        form = add_form(store, directory)
        form.submit()

        with pytest.raises(RuntimeError):
            form.submit()

    def test_store_failure_returns_to_editing(self, store, directory):
        store.fail_with = PersistenceError("unavailable")
        form = add_form(store, directory)

        with pytest.raises(PersistenceError):
            form.submit()

        assert form.state is FormState.EDITING
        assert "Amy" not in directory

        # user retries by hand
        store.fail_with = None
        assert form.submit().id == "lesson-1"

    def test_directory_failure_does_not_fail_saved_lesson(self, store):
        """The lesson is written; losing the autocomplete entry is not a failed save."""
        form = add_form(store, StudentDirectory(UnwritableStorage()))

        lesson = form.submit()

        assert lesson.id == "lesson-1"
        assert form.state is FormState.SUBMITTED
        assert form.submitted == lesson
        assert len(store.documents) == 1

    def test_unexpected_store_error_is_wrapped(self, store, directory):
        store.fail_with = RuntimeError("socket closed")
        form = add_form(store, directory)

        with pytest.raises(PersistenceError, match="socket closed"):
            form.submit()

    def test_missing_lesson_on_save(self, store, directory):
        store.fail_with = LessonNotFoundError("gone")
        form = LessonForm.for_edit(store, directory, stored_lesson())

        with pytest.raises(LessonNotFoundError):
            form.submit()


class TestDelete:
    """Tests for deleting from the edit form."""

    def test_delete_removes_lesson(self, store, directory):
        store.documents["existing"] = {}
        form = LessonForm.for_edit(store, directory, stored_lesson())

        form.delete()

        assert "existing" not in store.documents
        assert form.state is FormState.SUBMITTED

    def test_add_form_cannot_delete(self, store, directory):
        form = add_form(store, directory)

        with pytest.raises(RuntimeError):
            form.delete()

    def test_delete_failure_is_persistence_error(self, store, directory):
        store.fail_with = RuntimeError("boom")
        form = LessonForm.for_edit(store, directory, stored_lesson())

        with pytest.raises(PersistenceError):
            form.delete()
