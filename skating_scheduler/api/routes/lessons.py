"""
Lesson API endpoints.

Backs the calendar: list the visible lessons, and add, save or delete a
lesson through the same form rules the dialogs use. Mutating endpoints
require the edit gate to be unlocked for the caller's session.

Lists are read from the live Schedule, never straight from the database,
so every client sees the same snapshot.
"""

import logging
from datetime import datetime
from typing import Optional, Union

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from ...core.lessons.errors import (
    ConflictError,
    LessonNotFoundError,
    PersistenceError,
    ValidationError,
)
from ...core.lessons.filters import LessonFilter
from ...core.lessons.form import LessonForm
from ...core.lessons.models import COACHES, RINKS, Lesson
from ...core.lessons.normalizer import strip_rink_prefix, to_datetime
from ...core.lessons.schedule import Schedule
from ...infrastructure.snowflake.repositories.lessons import LessonRepository
from ..dependencies import (
    ClientContextDep,
    LessonRepositoryDep,
    ScheduleDep,
    SettingsDep,
    UnlockedClientDep,
)
from .filters import FilterResponse

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class LessonRequest(BaseModel):
    """
    Form values for adding or saving a lesson.

    `end` is optional: without it the lesson runs 30 minutes from `start`.
    Student and time checks happen in the form, not here, so the caller
    gets the same messages the dialogs show. Times are therefore accepted
    as text too; an unreadable one is rejected with "invalid time".
    """
    student: str = Field(description="Student name", max_length=200)
    coach: str = Field(default="Silvia", description=f"One of {', '.join(COACHES)}")
    rink: str = Field(default="Den", description=f"One of {', '.join(RINKS)}; a leading 'The' is dropped")
    start: Union[datetime, str] = Field(description="Lesson start (ISO 8601)")
    end: Optional[Union[datetime, str]] = Field(None, description="Lesson end; defaults to start + 30 minutes")

    @field_validator("coach")
    @classmethod
    def coach_must_be_known(cls, value: str) -> str:
        value = value.strip()
        if value not in COACHES:
            raise ValueError(f"coach must be one of {', '.join(COACHES)}")
        return value

    @field_validator("rink")
    @classmethod
    def rink_must_be_known(cls, value: str) -> str:
        value = strip_rink_prefix(value)
        if value not in RINKS:
            raise ValueError(f"rink must be one of {', '.join(RINKS)}")
        return value


class LessonResponse(BaseModel):
    """A lesson as the calendar renders it."""
    id: Optional[str] = Field(description="Store-assigned identifier")
    student: str
    coach: str
    rink: str
    start: datetime
    end: datetime
    title: str = Field(description="Student - Coach (Rink)")
    compact_title: str = Field(description="Student (Rink), for narrow screens")
    color: str = Field(description="Coach color")


class LessonListResponse(BaseModel):
    """Visible lessons after filtering."""
    lessons: list[LessonResponse]
    visible: int = Field(description="Number of lessons after filtering")
    total: int = Field(description="Number of lessons on the schedule")
    filter: FilterResponse


class DraftResponse(BaseModel):
    """Initial values for a new add form."""
    student: str
    coach: str
    rink: str
    start: datetime
    end: datetime
    coaches: list[str]
    rinks: list[str]
    students: list[str] = Field(description="Autocomplete names for this client")


class ConflictDetail(BaseModel):
    """Body of a 409 response."""
    message: str
    conflicting: LessonResponse


def _to_response(lesson: Lesson) -> LessonResponse:
    return LessonResponse(
        id=lesson.id,
        student=lesson.student,
        coach=lesson.coach,
        rink=lesson.rink,
        start=lesson.start,
        end=lesson.end,
        title=lesson.title,
        compact_title=lesson.compact_title,
        color=lesson.color,
    )


def _raise_for_form_error(error: Exception, lesson_id: Optional[str] = None) -> None:
    """Translate a form failure into the matching HTTP error."""
    if isinstance(error, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"reason": error.reason, "message": str(error)},
        )
    if isinstance(error, ConflictError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=ConflictDetail(
                message=str(error),
                conflicting=_to_response(error.conflicting),
            ).model_dump(mode="json"),
        )
    if isinstance(error, LessonNotFoundError):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Lesson not found",
        )
    if isinstance(error, PersistenceError):
        logger.error(
            "Lesson store rejected write",
            extra={"lesson_id": lesson_id, "error": str(error)},
            exc_info=error,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save changes. Please try again.",
        )
    raise error


def _find_lesson(
    lesson_id: str,
    schedule: Schedule,
    repository: LessonRepository,
) -> Lesson:
    """Look a lesson up, refreshing once in case the schedule is behind."""
    lesson = schedule.get(lesson_id)
    if lesson is None:
        repository.refresh()
        lesson = schedule.get(lesson_id)
    if lesson is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Lesson not found",
        )
    return lesson


def _fill_form(
    form: LessonForm,
    request: LessonRequest,
    current: Optional[Lesson] = None,
) -> None:
    """
    Apply request values the way the dialog applies picker changes.

    An unchanged start on an edit is left alone, so the stored end is kept
    instead of snapping back to start + 30 minutes.
    """
    form.set_student(request.student)
    form.set_coach(request.coach)
    form.set_rink(request.rink)
    start = to_datetime(request.start)
    if current is None or start is None or start != current.start:
        form.set_start(request.start)
    if request.end is not None:
        form.set_end(request.end)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=LessonListResponse,
    status_code=status.HTTP_200_OK,
    summary="List visible lessons",
    description="Lessons on the schedule after applying the coach and student filters",
)
async def list_lessons(
    schedule: ScheduleDep,
    context: ClientContextDep,
    coach: Optional[str] = Query(None, description="Override the saved coach filter"),
    student: Optional[str] = Query(None, description="Override the saved student filter"),
) -> LessonListResponse:
    """
    List lessons for the calendar.

    Without query parameters the client's saved filters apply. Query
    parameters override them for this request only.
    """
    saved = context.lesson_filter
    lesson_filter = LessonFilter(
        coach=coach if coach is not None else saved.coach,
        student=student if student is not None else saved.student,
    )

    visible = schedule.visible(lesson_filter)

    return LessonListResponse(
        lessons=[_to_response(lesson) for lesson in visible],
        visible=len(visible),
        total=len(schedule.lessons),
        filter=FilterResponse.from_filter(lesson_filter),
    )


@router.get(
    "/draft",
    response_model=DraftResponse,
    status_code=status.HTTP_200_OK,
    summary="New lesson defaults",
)
async def get_draft(
    repository: LessonRepositoryDep,
    context: ClientContextDep,
) -> DraftResponse:
    """Starting values for the Add Lesson dialog."""
    form = LessonForm.for_add(repository, context.directory)
    return DraftResponse(
        student=form.student,
        coach=form.coach,
        rink=form.rink,
        start=form.start,
        end=form.end,
        coaches=list(COACHES),
        rinks=list(RINKS),
        students=context.directory.names,
    )


@router.get(
    "/{lesson_id}",
    response_model=LessonResponse,
    status_code=status.HTTP_200_OK,
    summary="Get one lesson",
)
async def get_lesson(
    lesson_id: str,
    schedule: ScheduleDep,
    repository: LessonRepositoryDep,
) -> LessonResponse:
    return _to_response(_find_lesson(lesson_id, schedule, repository))


@router.post(
    "",
    response_model=LessonResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a lesson",
    responses={
        400: {"description": "Empty student, invalid time or end before start"},
        403: {"description": "Editing is locked"},
        409: {"description": "Overlaps a lesson for the same student or coach"},
    },
)
async def add_lesson(
    request: LessonRequest,
    settings: SettingsDep,
    schedule: ScheduleDep,
    repository: LessonRepositoryDep,
    context: UnlockedClientDep,
) -> LessonResponse:
    """
    Add a lesson.

    When conflict checking is enabled, a lesson overlapping another lesson
    for the same student or coach is rejected with 409 and the lesson it
    collides with.
    """
    checker = schedule.conflict_checker() if settings.conflict_check_enabled else None
    form = LessonForm.for_add(repository, context.directory, conflict_checker=checker)
    _fill_form(form, request)

    try:
        lesson = form.submit()
    except (ValidationError, ConflictError, PersistenceError) as e:
        _raise_for_form_error(e)

    return _to_response(lesson)


@router.put(
    "/{lesson_id}",
    response_model=LessonResponse,
    status_code=status.HTTP_200_OK,
    summary="Save a lesson",
    responses={
        400: {"description": "Empty student, invalid time or end before start"},
        403: {"description": "Editing is locked"},
        404: {"description": "Lesson not found"},
    },
)
async def update_lesson(
    lesson_id: str,
    request: LessonRequest,
    schedule: ScheduleDep,
    repository: LessonRepositoryDep,
    context: UnlockedClientDep,
) -> LessonResponse:
    """Replace a lesson with the submitted values."""
    lesson = _find_lesson(lesson_id, schedule, repository)
    form = LessonForm.for_edit(repository, context.directory, lesson)
    _fill_form(form, request, lesson)

    try:
        updated = form.submit()
    except (ValidationError, PersistenceError) as e:
        _raise_for_form_error(e, lesson_id)

    return _to_response(updated)


@router.delete(
    "/{lesson_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a lesson",
    responses={
        403: {"description": "Editing is locked"},
        404: {"description": "Lesson not found"},
    },
)
async def delete_lesson(
    lesson_id: str,
    schedule: ScheduleDep,
    repository: LessonRepositoryDep,
    context: UnlockedClientDep,
) -> None:
    lesson = _find_lesson(lesson_id, schedule, repository)
    form = LessonForm.for_edit(repository, context.directory, lesson)

    try:
        form.delete()
    except PersistenceError as e:
        _raise_for_form_error(e, lesson_id)
