"""
Edit gate endpoints.

Unlocking records a flag for the caller's browser session (X-Session-ID),
so a reload within the session stays unlocked and a new session starts
locked. The password is a deterrent against accidental edits; anyone who
can use the calendar can read it from the deployment.
"""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.lessons.errors import AuthError
from ..dependencies import ClientContextDep

logger = logging.getLogger(__name__)

router = APIRouter()


class UnlockRequest(BaseModel):
    password: str = Field(description="Shared edit password", max_length=200)


class AccessResponse(BaseModel):
    locked: bool = Field(description="Whether add/edit/delete are hidden")


@router.get(
    "",
    response_model=AccessResponse,
    status_code=status.HTTP_200_OK,
    summary="Gate state",
)
async def get_access(context: ClientContextDep) -> AccessResponse:
    return AccessResponse(locked=context.gate.locked)


@router.post(
    "/unlock",
    response_model=AccessResponse,
    status_code=status.HTTP_200_OK,
    summary="Unlock editing",
    responses={401: {"description": "Incorrect password"}},
)
async def unlock(request: UnlockRequest, context: ClientContextDep) -> AccessResponse:
    try:
        context.gate.attempt_unlock(request.password)
    except AuthError as e:
        logger.warning(
            "Unlock rejected",
            extra={"session_id": context.session_id}
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        )

    return AccessResponse(locked=False)


@router.post(
    "/lock",
    response_model=AccessResponse,
    status_code=status.HTTP_200_OK,
    summary="Lock editing",
)
async def lock(context: ClientContextDep) -> AccessResponse:
    context.gate.relock()
    return AccessResponse(locked=True)
