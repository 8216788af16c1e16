"""
Add/edit lesson form.

The form owns a private copy of the values being edited, so the schedule
can refresh underneath an open form without disturbing it. Submitting walks
the form through EDITING -> VALIDATING -> REJECTED or SUBMITTED:

1. blank student            -> ValidationError("empty student")
2. start/end not an instant -> ValidationError("invalid time")
3. end <= start             -> ValidationError("end before start")
4. add form with a conflict checker wired in, and a conflict
                            -> ConflictError
5. otherwise the full document is written, the student name is added to
   the directory and the form is SUBMITTED.

A rejected form can be corrected and submitted again. A store failure puts
the form back into EDITING and re-raises, so the user can retry by hand.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from .conflicts import ConflictChecker
from .directory import StudentDirectory
from .errors import ConflictError, LessonError, PersistenceError, ValidationError
from .models import DEFAULT_COACH, DEFAULT_DURATION, DEFAULT_RINK, Lesson
from .normalizer import strip_rink_prefix, to_datetime, to_document
from .store import LessonStore

logger = logging.getLogger(__name__)

_PICKER_STEP = timedelta(minutes=15)


class FormMode(Enum):
    ADD = "add"
    EDIT = "edit"


class FormState(Enum):
    EDITING = "editing"
    VALIDATING = "validating"
    REJECTED = "rejected"
    SUBMITTED = "submitted"


def round_to_picker_step(value: datetime) -> datetime:
    """Round to the nearest quarter hour, the time picker's granularity."""
    epoch = datetime(1970, 1, 1, tzinfo=value.tzinfo)
    steps = round((value - epoch) / _PICKER_STEP)
    return epoch + steps * _PICKER_STEP


class LessonForm:
    """
    Form model behind the Add Lesson and Edit Lesson dialogs.

    Use `for_add` or `for_edit` rather than the constructor.
    """

    def __init__(
        self,
        store: LessonStore,
        directory: StudentDirectory,
        mode: FormMode,
        *,
        lesson_id: Optional[str] = None,
        student: str = "",
        coach: str = DEFAULT_COACH,
        rink: str = DEFAULT_RINK,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        conflict_checker: Optional[ConflictChecker] = None,
    ) -> None:
        if mode is FormMode.EDIT and lesson_id is None:
            raise ValueError("Edit form requires a lesson id")

        self._store = store
        self._directory = directory
        self._conflict_checker = conflict_checker
        self.mode = mode
        self.lesson_id = lesson_id

        self.student = student
        self.coach = coach
        self.rink = rink
        self.start: Optional[datetime] = to_datetime(start)
        self.end: Optional[datetime] = to_datetime(end)

        self.state = FormState.EDITING
        self.error: Optional[LessonError] = None
        self.submitted: Optional[Lesson] = None

    @classmethod
    def for_add(
        cls,
        store: LessonStore,
        directory: StudentDirectory,
        conflict_checker: Optional[ConflictChecker] = None,
        now: Optional[datetime] = None,
    ) -> "LessonForm":
        """
        Blank add form.

        Starts at the current time rounded to the quarter hour and runs
        for the default half hour.
        """
        start = round_to_picker_step(now or datetime.now(timezone.utc))
        return cls(
            store,
            directory,
            FormMode.ADD,
            start=start,
            end=start + DEFAULT_DURATION,
            conflict_checker=conflict_checker,
        )

    @classmethod
    def for_edit(
        cls,
        store: LessonStore,
        directory: StudentDirectory,
        lesson: Lesson,
    ) -> "LessonForm":
        """Edit form prefilled from a stored lesson."""
        return cls(
            store,
            directory,
            FormMode.EDIT,
            lesson_id=lesson.id,
            student=lesson.student,
            coach=lesson.coach,
            rink=lesson.rink,
            start=lesson.start,
            end=lesson.end,
        )

    # -----------------------------------------------------------------------
    # Field changes
    # -----------------------------------------------------------------------

    def set_start(self, value: Any) -> None:
        """
        Change the start time.

        The end always snaps to start + 30 minutes, however the end was set
        before. A cleared picker (None) is ignored.
        """
        if value is None:
            return
        self.start = to_datetime(value)
        if self.start is not None:
            self.end = self.start + DEFAULT_DURATION
        self._touch()

    def set_end(self, value: Any) -> None:
        """Change the end time. Never moves the start."""
        if value is None:
            return
        self.end = to_datetime(value)
        self._touch()

    def set_student(self, value: str) -> None:
        self.student = value
        self._touch()

    def set_coach(self, value: str) -> None:
        self.coach = value
        self._touch()

    def set_rink(self, value: str) -> None:
        self.rink = value
        self._touch()

    def _touch(self) -> None:
        if self.state is FormState.REJECTED:
            self.state = FormState.EDITING
            self.error = None

    # -----------------------------------------------------------------------
    # Validation and submission
    # -----------------------------------------------------------------------

    def to_lesson(self) -> Lesson:
        """
        Validate the current values and build the lesson they describe.

        Raises ValidationError or ConflictError. Does not change form state.
        """
        student = self.student.strip()
        if not student:
            raise ValidationError(
                ValidationError.EMPTY_STUDENT, "Please enter a student name"
            )

        if not isinstance(self.start, datetime) or not isinstance(self.end, datetime):
            raise ValidationError(
                ValidationError.INVALID_TIME, "Please select valid start and end times"
            )

        if self.end <= self.start:
            raise ValidationError(
                ValidationError.END_BEFORE_START, "End time must be after start time"
            )

        lesson = Lesson(
            id=self.lesson_id,
            student=student,
            coach=self.coach.strip(),
            rink=strip_rink_prefix(self.rink),
            start=self.start,
            end=self.end,
        )

        if self.mode is FormMode.ADD and self._conflict_checker is not None:
            conflicting = self._conflict_checker.check(lesson)
            if conflicting is not None:
                raise ConflictError(conflicting)

        return lesson

    def submit(self) -> Lesson:
        """
        Validate and persist.

        Returns the stored lesson (with its id). Raises ValidationError,
        ConflictError or PersistenceError; only the first two leave the form
        REJECTED.
        """
        if self.state is FormState.SUBMITTED:
            raise RuntimeError("Form has already been submitted")

        self.state = FormState.VALIDATING
        try:
            lesson = self.to_lesson()
        except (ValidationError, ConflictError) as e:
            self.state = FormState.REJECTED
            self.error = e
            logger.warning(
                "Lesson form rejected",
                extra={"mode": self.mode.value, "reason": str(e)}
            )
            raise

        try:
            stored = self._persist(lesson)
        except PersistenceError as e:
            self.state = FormState.EDITING
            self.error = e
            raise
        # Lesson is already stored; directory errors are only logged
        # The lesson is already stored; a failed autocomplete update is not a failed save
        try:
            self._directory.add(stored.student)
        except PersistenceError as e:
            logger.warning(
                "Could not update student directory",
                extra={"lesson_id": stored.id, "error": str(e)}
            )

        self.state = FormState.SUBMITTED
        self.error = None
        self.submitted = stored

        logger.info(
            "Lesson saved",
            extra={"mode": self.mode.value, "lesson_id": stored.id, "title": stored.title}
        )
        return stored

    def delete(self) -> None:
        """Delete the lesson this edit form was opened for."""
        if self.mode is not FormMode.EDIT:
            raise RuntimeError("Only an edit form can delete its lesson")

        try:
            self._store.delete(self.lesson_id)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to delete lesson: {e}") from e

        self.state = FormState.SUBMITTED
        logger.info("Lesson deleted", extra={"lesson_id": self.lesson_id})

    def _persist(self, lesson: Lesson) -> Lesson:
        document = to_document(lesson)
        try:
            if self.mode is FormMode.ADD:
                lesson_id = self._store.create(document)
                return lesson.with_id(lesson_id)
            self._store.update(self.lesson_id, document)
            return replace(lesson, id=self.lesson_id)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save lesson: {e}") from e
