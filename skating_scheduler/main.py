"""
Skating Scheduler API entry point.

`create_app` builds the application from a Settings object, which is how
the tests get an isolated in-memory instance each. The module-level `app`
uses settings from the environment.

For local development:
    SNOWFLAKE_MOCK_MODE=true uvicorn skating_scheduler.main:app --reload

For production:
    gunicorn skating_scheduler.main:app -w 1 -k uvicorn.workers.UvicornWorker

Run a single worker: the live schedule and its subscribers live in the
process, and extra workers would each poll the database separately.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.routes import access, filters, health, lessons, students
from .config.settings import Settings, get_settings
from .core.lessons.schedule import Schedule
from .infrastructure.snowflake.client import create_snowflake_connection
from .infrastructure.snowflake.repositories.client_storage import ClientStorageRepository
from .infrastructure.snowflake.repositories.lessons import LessonRepository, SnowflakeConfig

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


def _snowflake_config(settings: Settings) -> Optional[SnowflakeConfig]:
    if settings.snowflake_mock_mode:
        return None
    return SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        private_key_base64=settings.snowflake_private_key_base64,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )


async def _poll_snapshots(repository: LessonRepository, interval_seconds: float) -> None:
    """
    Pick up changes made by other writers.

    The refresh is a blocking database read, so it runs in a worker thread.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            if await asyncio.to_thread(repository.refresh):
                logger.debug("Lesson snapshot changed")
        except Exception as e:
            logger.error("Snapshot poll failed", extra={"error": str(e)}, exc_info=e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup opens the database connection, makes sure the tables exist,
    subscribes the Schedule to the lesson store and starts the snapshot
    poll. Shutdown undoes all of that in reverse.
    """
    settings: Settings = app.state.settings

    logger.info(
        "Skating Scheduler API starting",
        extra={
            "version": __version__,
            "mock_mode": {"snowflake": settings.snowflake_mock_mode},
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    with create_snowflake_connection(
        config=_snowflake_config(settings),
        mock_mode=settings.snowflake_mock_mode,
    ) as connection:
        repository = LessonRepository(connection)
        repository.ensure_table()
        ClientStorageRepository.ensure_table(connection)

        schedule = Schedule(repository)
        schedule.start()

        app.state.connection = connection
        app.state.lesson_repository = repository
        app.state.schedule = schedule

        poller = None
        if settings.snapshot_poll_seconds > 0:
            poller = asyncio.create_task(
                _poll_snapshots(repository, settings.snapshot_poll_seconds)
            )

        try:
            yield
        finally:
            if poller is not None:
                poller.cancel()
                try:
                    await poller
                except asyncio.CancelledError:
                    pass
            schedule.stop()
            repository.close()
            logger.info("Skating Scheduler API shutting down")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Tests pass their own Settings; otherwise they come from the environment.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Lesson calendar backend for a skating school.

        ## Features

        - Live lesson list for the calendar, filtered by coach and student
        - Add, save and delete lessons with the same checks as the dialogs
        - Optional double-booking check for new lessons
        - Password gate for editing

        ## Client headers

        - `X-Client-ID`: identifies the client for saved filters and the
          student autocomplete list
        - `X-Session-ID`: identifies the browser session for the edit gate

        ## Workflow

        1. **Unlock**: `POST /api/v1/access/unlock` with the edit password
        2. **Add**: `POST /api/v1/lessons`
        3. **Edit**: `PUT /api/v1/lessons/{lesson_id}`
        4. **Delete**: `DELETE /api/v1/lessons/{lesson_id}`
        5. **Lock**: `POST /api/v1/access/lock`
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        lessons.router,
        prefix="/api/v1/lessons",
        tags=["Lessons"],
    )

    app.include_router(
        filters.router,
        prefix="/api/v1/filters",
        tags=["Filters"],
    )

    app.include_router(
        students.router,
        prefix="/api/v1/students",
        tags=["Students"],
    )

    app.include_router(
        access.router,
        prefix="/api/v1/access",
        tags=["Access"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - point at the docs."""
        return {
            "message": "Skating Scheduler API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Last-resort handler for anything the routes did not map.

        The traceback goes to the log; the client only sees a generic 500.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please try again."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# Imported by uvicorn/gunicorn
app = create_app()


# For debugging/development
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "skating_scheduler.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
