"""
Filter API endpoints.

The coach and student filters are saved per client, so a reload shows the
same view. They are never shared between clients.
"""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.lessons.filters import ALL_COACHES, LessonFilter, save_filter
from ...core.lessons.models import COACHES
from ..dependencies import ClientContextDep

logger = logging.getLogger(__name__)

router = APIRouter()


class FilterRequest(BaseModel):
    """New filter values."""
    coach: str = Field(default=ALL_COACHES, description="Coach name or 'All'")
    student: str = Field(default="", description="Case-insensitive student name fragment", max_length=200)


class FilterResponse(BaseModel):
    """Current filter values."""
    coach: str
    student: str
    active: bool = Field(description="Whether any filter is narrowing the view")

    @classmethod
    def from_filter(cls, lesson_filter: LessonFilter) -> "FilterResponse":
        return cls(
            coach=lesson_filter.coach,
            student=lesson_filter.student,
            active=lesson_filter.is_active,
        )


def _check_coach(coach: str) -> None:
    if coach != ALL_COACHES and coach not in COACHES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown coach '{coach}'",
        )


@router.get(
    "",
    response_model=FilterResponse,
    status_code=status.HTTP_200_OK,
    summary="Get saved filters",
)
async def get_filters(context: ClientContextDep) -> FilterResponse:
    return FilterResponse.from_filter(context.lesson_filter)


@router.put(
    "",
    response_model=FilterResponse,
    status_code=status.HTTP_200_OK,
    summary="Save filters",
)
async def set_filters(request: FilterRequest, context: ClientContextDep) -> FilterResponse:
    _check_coach(request.coach)

    lesson_filter = LessonFilter(coach=request.coach, student=request.student)
    save_filter(context.local, lesson_filter)

    logger.debug(
        "Filters saved",
        extra={"client_id": context.client_id, "coach": lesson_filter.coach}
    )
    return FilterResponse.from_filter(lesson_filter)


@router.post(
    "/coach/{coach}/toggle",
    response_model=FilterResponse,
    status_code=status.HTTP_200_OK,
    summary="Toggle coach filter",
    description="Legend click: show only this coach, or everyone if already selected",
)
async def toggle_coach(coach: str, context: ClientContextDep) -> FilterResponse:
    _check_coach(coach)

    lesson_filter = context.lesson_filter.toggle_coach(coach)
    save_filter(context.local, lesson_filter)
    return FilterResponse.from_filter(lesson_filter)
