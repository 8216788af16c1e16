"""
FastAPI dependency injection.

Dependencies provide instances of services, repositories, and per-client
state to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden for testing
- Resource lifecycle (connections, subscriptions) is managed in one place

Long-lived objects (the database connection, the lesson repository and the
live Schedule) are created in the application lifespan and kept on
`app.state`. Per-client state is rebuilt for every request from the
X-Client-ID and X-Session-ID headers, which stand in for the browser's
localStorage and sessionStorage.
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from ..config.settings import Settings
from ..core.lessons.directory import StudentDirectory
from ..core.lessons.filters import LessonFilter, load_filter
from ..core.lessons.gate import AccessGate
from ..core.lessons.schedule import Schedule
from ..core.lessons.storage import ClientStorage
from ..infrastructure.snowflake.repositories.client_storage import (
    LOCAL_SCOPE,
    SESSION_SCOPE,
    ClientStorageRepository,
)
from ..infrastructure.snowflake.repositories.lessons import LessonRepository

logger = logging.getLogger(__name__)

ANONYMOUS_OWNER = "anonymous"


# ---------------------------------------------------------------------------
# Application-wide Dependencies
# ---------------------------------------------------------------------------

def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_lesson_repository(request: Request) -> LessonRepository:
    """
    Provide the shared LessonRepository.

    There is exactly one per process: it owns the snapshot subscriptions,
    so a second instance would have its own subscribers and miss writes.
    """
    return request.app.state.lesson_repository


def get_schedule(request: Request) -> Schedule:
    """Provide the live Schedule kept current by the store subscription."""
    return request.app.state.schedule


# ---------------------------------------------------------------------------
# Per-client State
# ---------------------------------------------------------------------------

@dataclass
class ClientContext:
    """
    Everything the view layer knows about one client.

    `local` survives reloads (autocomplete list, filters); `session` lasts
    for one browser session (the unlock flag).
    """
    client_id: str
    session_id: str
    local: ClientStorage
    session: ClientStorage
    gate: AccessGate
    directory: StudentDirectory

    @property
    def lesson_filter(self) -> LessonFilter:
        return load_filter(self.local)


def get_client_context(
    request: Request,
    settings: Annotated[Settings, Depends(get_app_settings)],
    x_client_id: Annotated[Optional[str], Header()] = None,
    x_session_id: Annotated[Optional[str], Header()] = None,
) -> ClientContext:
    """
    Build the per-client context from request headers.

    Requests without the headers share an anonymous bucket, which is fine
    for a single shared kiosk but means their filters and unlock flag are
    shared too.
    """
    connection = request.app.state.connection
    client_id = x_client_id or ANONYMOUS_OWNER
    session_id = x_session_id or ANONYMOUS_OWNER

    local = ClientStorageRepository(connection, LOCAL_SCOPE, client_id)
    session = ClientStorageRepository(connection, SESSION_SCOPE, session_id)

    return ClientContext(
        client_id=client_id,
        session_id=session_id,
        local=local,
        session=session,
        gate=AccessGate(session, settings.edit_password),
        directory=StudentDirectory(local),
    )


def require_unlocked(
    context: Annotated[ClientContext, Depends(get_client_context)],
) -> ClientContext:
    """
    Refuse mutating actions while the gate is locked.

    Raises 403. The client can always unlock with the shared password;
    this only keeps the edit actions out of casual reach.
    """
    if context.gate.locked:
        logger.info(
            "Edit attempted while locked",
            extra={"session_id": context.session_id}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Editing is locked. Unlock with the edit password first.",
        )
    return context


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
LessonRepositoryDep = Annotated[LessonRepository, Depends(get_lesson_repository)]
ScheduleDep = Annotated[Schedule, Depends(get_schedule)]
ClientContextDep = Annotated[ClientContext, Depends(get_client_context)]
UnlockedClientDep = Annotated[ClientContext, Depends(require_unlocked)]
