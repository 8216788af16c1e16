"""
Snowflake repository for lesson documents.

Implements the LessonStore contract on top of a `lessons` table. Each row
is one document: the nested student/coach/rink props as JSON text, start
and end timestamps and the derived title. Older rows imported from the
previous hosted database may instead carry flat student/coach/rink columns;
both shapes are returned as-is and left to the normalizer.

Snowflake has no change feed we can listen to, so subscriptions are driven
by `refresh()`: read the whole table, compare with the last snapshot,
notify subscribers if it changed. Writes through this repository refresh
immediately; the application polls `refresh()` to see everyone else's.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol
from uuid import uuid4

from skating_scheduler.core.lessons.errors import LessonNotFoundError, PersistenceError
from skating_scheduler.core.lessons.store import (
    SnapshotCallback,
    SnapshotPublisher,
    StoredRecord,
    Subscription,
)

logger = logging.getLogger(__name__)


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Using a protocol means tests can provide a mock without
    importing the actual snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_base64: Optional[str] = None
    database: str = "SKATING"
    schema: str = "SCHEDULE"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


LESSONS_DDL = """
    CREATE TABLE IF NOT EXISTS lessons (
        lesson_id VARCHAR PRIMARY KEY,
        title VARCHAR,
        start_at VARCHAR,
        end_at VARCHAR,
        extended_props VARCHAR,
        student VARCHAR,
        coach VARCHAR,
        rink VARCHAR,
        created_at TIMESTAMP_TZ DEFAULT CURRENT_TIMESTAMP(),
        updated_at TIMESTAMP_TZ DEFAULT CURRENT_TIMESTAMP()
    )
"""


class LessonRepository:
    """
    Lesson document collection backed by Snowflake.

    One instance is shared for the application's lifetime so that every
    subscriber sees the same snapshots.
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection
        self._publisher = SnapshotPublisher()

    def ensure_table(self) -> None:
        cursor = self._conn.cursor()
        try:
            cursor.execute(LESSONS_DDL)
            self._conn.commit()
        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def create(self, document: dict[str, Any]) -> str:
        """Insert a new document and return the id assigned to it."""
        lesson_id = uuid4().hex
        self._write(
            "create",
            lesson_id,
            """
                INSERT INTO lessons (
                    lesson_id, title, start_at, end_at, extended_props
                ) VALUES (%s, %s, %s, %s, %s)
            """,
            (lesson_id, *self._document_params(document)),
            require_match=False,
        )
        logger.info("Lesson created", extra={"lesson_id": lesson_id})
        return lesson_id

    def update(self, lesson_id: str, document: dict[str, Any]) -> None:
        """
        Replace a document.

        The flat legacy columns are cleared so the row holds exactly the
        new document.
        """
        self._write(
            "update",
            lesson_id,
            """
                UPDATE lessons
                SET title = %s,
                    start_at = %s,
                    end_at = %s,
                    extended_props = %s,
                    student = NULL,
                    coach = NULL,
                    rink = NULL,
                    updated_at = CURRENT_TIMESTAMP()
                WHERE lesson_id = %s
            """,
            (*self._document_params(document), lesson_id),
        )
        logger.info("Lesson updated", extra={"lesson_id": lesson_id})

    def delete(self, lesson_id: str) -> None:
        self._write(
            "delete",
            lesson_id,
            "DELETE FROM lessons WHERE lesson_id = %s",
            (lesson_id,),
        )
        logger.info("Lesson deleted", extra={"lesson_id": lesson_id})

    def import_document(self, lesson_id: str, document: dict[str, Any]) -> None:
        """Insert a document under a caller-chosen id (used by the import script)."""
        self._write(
            "import",
            lesson_id,
            """
                INSERT INTO lessons (
                    lesson_id, title, start_at, end_at, extended_props
                ) VALUES (%s, %s, %s, %s, %s)
            """,
            (lesson_id, *self._document_params(document)),
            require_match=False,
        )

    # -----------------------------------------------------------------------
    # Reads and subscriptions
    # -----------------------------------------------------------------------

    def list_records(self) -> list[StoredRecord]:
        """Read every document, ordered by start time then id."""
        cursor = self._conn.cursor()
        try:
            cursor.execute("""
                SELECT
                    lesson_id,
                    title,
                    start_at,
                    end_at,
                    extended_props,
                    student,
                    coach,
                    rink
                FROM lessons
                ORDER BY start_at, lesson_id
            """)
            return [self._build_record(row) for row in cursor.fetchall()]
        except Exception as e:
            logger.error("Failed to read lessons", extra={"error": str(e)})
            raise PersistenceError(f"Failed to read lessons: {e}") from e
        finally:
            cursor.close()

    def subscribe(self, callback: SnapshotCallback) -> Subscription:
        """
        Deliver the full document list now and after every change.

        Raises PersistenceError if the initial read fails.
        """
        self._publisher.publish(self.list_records())
        return self._publisher.add(callback)

    def refresh(self) -> bool:
        """
        Re-read the table and notify subscribers if anything changed.

        Read failures are logged and swallowed; the next refresh will try
        again and subscribers keep their last good snapshot.
        """
        if self._publisher.subscriber_count == 0:
            return False
        try:
            records = self.list_records()
        except PersistenceError:
            return False
        return self._publisher.publish(records)

    def close(self) -> None:
        """Cancel all subscriptions."""
        self._publisher.close()

    def ping(self) -> None:
        cursor = self._conn.cursor()
        try:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _write(
        self,
        operation: str,
        lesson_id: str,
        query: str,
        params: tuple,
        require_match: bool = True,
    ) -> None:
        cursor = self._conn.cursor()
        try:
            cursor.execute(query, params)
            if require_match and cursor.rowcount == 0:
                raise LessonNotFoundError(f"Lesson {lesson_id} not found")
            self._conn.commit()
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(
                "Lesson write failed",
                extra={"operation": operation, "lesson_id": lesson_id, "error": str(e)}
            )
            raise PersistenceError(f"Failed to {operation} lesson: {e}") from e
        finally:
            cursor.close()

        self.refresh()

    @staticmethod
    def _document_params(document: dict[str, Any]) -> tuple:
        props = document.get("extendedProps") or {}
        return (
            document.get("title"),
            _timestamp_param(document.get("start")),
            _timestamp_param(document.get("end")),
            json.dumps(props),
        )

    @staticmethod
    def _build_record(row: tuple) -> StoredRecord:
        lesson_id, title, start_at, end_at, extended_props, student, coach, rink = row

        data: dict[str, Any] = {}
        if title is not None:
            data["title"] = title
        if start_at is not None:
            data["start"] = start_at
        if end_at is not None:
            data["end"] = end_at

        if extended_props:
            try:
                props = json.loads(extended_props) if isinstance(extended_props, str) else extended_props
            except ValueError:
                logger.warning(
                    "Ignoring unreadable lesson props",
                    extra={"lesson_id": lesson_id}
                )
                props = None
            if isinstance(props, dict):
                data["extendedProps"] = props

        for key, value in (("student", student), ("coach", coach), ("rink", rink)):
            if value is not None:
                data[key] = value

        return StoredRecord(id=str(lesson_id), data=data)


def _timestamp_param(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
