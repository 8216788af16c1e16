"""
Student name endpoints.

Two different lists live here:
- the client's autocomplete directory, built from names it has entered
- suggestions for the student filter, built from the current schedule
"""

import logging

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from ...core.lessons.filters import student_suggestions
from ..dependencies import ClientContextDep, ScheduleDep

logger = logging.getLogger(__name__)

router = APIRouter()


class StudentListResponse(BaseModel):
    """Alphabetized student names."""
    students: list[str] = Field(description="Student names")
    total: int


def _respond(names: list[str]) -> StudentListResponse:
    return StudentListResponse(students=names, total=len(names))


@router.get(
    "",
    response_model=StudentListResponse,
    status_code=status.HTTP_200_OK,
    summary="Autocomplete names",
    description="Names this client has entered in lesson forms",
)
async def get_directory(context: ClientContextDep) -> StudentListResponse:
    return _respond(context.directory.names)


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear autocomplete names",
)
async def clear_directory(context: ClientContextDep) -> None:
    context.directory.clear()
    logger.info("Student directory cleared", extra={"client_id": context.client_id})


@router.get(
    "/suggestions",
    response_model=StudentListResponse,
    status_code=status.HTTP_200_OK,
    summary="Filter suggestions",
    description="Distinct student names currently on the schedule",
)
async def get_suggestions(schedule: ScheduleDep) -> StudentListResponse:
    return _respond(student_suggestions(schedule.lessons))
