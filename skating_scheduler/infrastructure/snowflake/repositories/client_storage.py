"""
Client key-value storage in Snowflake.

Backs the ClientStorage protocol with a single `client_storage` table.
Rows are keyed by scope, owner and key:

- scope "local": one owner per client (X-Client-ID). Holds the student
  autocomplete list and filter selections, which survive reloads.
- scope "session": one owner per browser session (X-Session-ID). Holds the
  unlock flag, which should not outlive the session.
"""

import logging
from typing import Optional

from skating_scheduler.core.lessons.errors import PersistenceError

from .lessons import SnowflakeConnection

logger = logging.getLogger(__name__)

LOCAL_SCOPE = "local"
SESSION_SCOPE = "session"

CLIENT_STORAGE_DDL = """
    CREATE TABLE IF NOT EXISTS client_storage (
        scope VARCHAR NOT NULL,
        owner_id VARCHAR NOT NULL,
        storage_key VARCHAR NOT NULL,
        storage_value VARCHAR,
        updated_at TIMESTAMP_TZ DEFAULT CURRENT_TIMESTAMP(),
        PRIMARY KEY (scope, owner_id, storage_key)
    )
"""


class ClientStorageRepository:
    """ClientStorage for one (scope, owner) pair."""

    def __init__(self, connection: SnowflakeConnection, scope: str, owner_id: str) -> None:
        self._conn = connection
        self._scope = scope
        self._owner_id = owner_id

    @staticmethod
    def ensure_table(connection: SnowflakeConnection) -> None:
        cursor = connection.cursor()
        try:
            cursor.execute(CLIENT_STORAGE_DDL)
            connection.commit()
        finally:
            cursor.close()

    def get(self, key: str) -> Optional[str]:
        cursor = self._conn.cursor()
        try:
            cursor.execute("""
                SELECT storage_value
                FROM client_storage
                WHERE scope = %s
                  AND owner_id = %s
                  AND storage_key = %s
            """, (self._scope, self._owner_id, key))
            row = cursor.fetchone()
            return row[0] if row else None
        except Exception as e:
            logger.error(
                "Failed to read client storage",
                extra={"scope": self._scope, "key": key, "error": str(e)}
            )
            raise PersistenceError(f"Failed to read {key}: {e}") from e
        finally:
            cursor.close()

    def set(self, key: str, value: str) -> None:
        self._execute(
            "write",
            key,
            """
                MERGE INTO client_storage AS target
                USING (SELECT %s AS scope, %s AS owner_id, %s AS storage_key) AS source
                ON target.scope = source.scope
                   AND target.owner_id = source.owner_id
                   AND target.storage_key = source.storage_key
                WHEN MATCHED THEN UPDATE SET
                    storage_value = %s,
                    updated_at = CURRENT_TIMESTAMP()
                WHEN NOT MATCHED THEN INSERT (
                    scope, owner_id, storage_key, storage_value
                ) VALUES (%s, %s, %s, %s)
            """,
            (
                self._scope, self._owner_id, key,
                value,
                self._scope, self._owner_id, key, value,
            ),
        )

    def remove(self, key: str) -> None:
        self._execute(
            "remove",
            key,
            """
                DELETE FROM client_storage
                WHERE scope = %s
                  AND owner_id = %s
                  AND storage_key = %s
            """,
            (self._scope, self._owner_id, key),
        )

    def _execute(self, operation: str, key: str, query: str, params: tuple) -> None:
        cursor = self._conn.cursor()
        try:
            cursor.execute(query, params)
            self._conn.commit()
        except Exception as e:
            logger.error(
                "Client storage write failed",
                extra={"operation": operation, "scope": self._scope, "key": key, "error": str(e)}
            )
            raise PersistenceError(f"Failed to {operation} {key}: {e}") from e
        finally:
            cursor.close()
