"""
Opening Snowflake connections, real or in-memory.

The application opens one connection in its lifespan and hands it to the
repositories; nothing else issues SQL. In mock mode the connection is an
in-memory stand-in that understands exactly the statements the lesson and
client storage repositories send, which is also what the tests run on.
"""

import base64
import logging
from contextlib import contextmanager
from typing import Generator, Optional

from .repositories.lessons import SnowflakeConfig, SnowflakeConnection

logger = logging.getLogger(__name__)


class SnowflakeConnectionError(Exception):
    """Could not open a connection (bad credentials, unreachable account, bad key)."""
    pass


def _load_private_key(config: SnowflakeConfig) -> bytes:
    """
    Load private key for key-pair authentication.

    Snowflake requires the private key as DER bytes, not a file path.
    The key comes either from a PEM file or, for deployments without a
    filesystem, from a base64-encoded PEM in the environment.
    """
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    if config.private_key_path:
        with open(config.private_key_path, 'rb') as key_file:
            pem = key_file.read()
    else:
        pem = base64.b64decode(config.private_key_base64)

    private_key = serialization.load_pem_private_key(
        pem,
        password=None,  # No password on the key
        backend=default_backend()
    )

    # Convert to the format Snowflake expects
    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Open a real Snowflake connection and close it on exit.

    A private key (file or base64) takes precedence over the password.

    Usage:
        with get_snowflake_connection(config) as conn:
            cursor = conn.cursor()
            # do work
            conn.commit()
    """
    try:
        import snowflake.connector
    except ImportError:
        raise ImportError(
            "snowflake-connector-python is required. "
            "Install with: pip install snowflake-connector-python"
        )

    conn = None
    try:
        connect_params = {
            'account': config.account,
            'user': config.user,
            'database': config.database,
            'schema': config.schema,
            'warehouse': config.warehouse,
            'role': config.role,
            'client_session_keep_alive': True,
        }

        if config.private_key_path or config.private_key_base64:
            logger.info("Using key-pair authentication for Snowflake")
            connect_params['private_key'] = _load_private_key(config)
        elif config.password:
            logger.info("Using password authentication for Snowflake")
            connect_params['password'] = config.password
        else:
            raise SnowflakeConnectionError(
                "Either password or a private key must be provided"
            )

        conn = snowflake.connector.connect(**connect_params)

        logger.debug(
            "Established Snowflake connection",
            extra={
                "account": config.account,
                "database": config.database,
                "schema": config.schema,
            }
        )

    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account}
        )
        raise SnowflakeConnectionError(f"Database connection failed: {e}") from e

    except SnowflakeConnectionError:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error connecting to Snowflake",
            extra={"error": str(e)}
        )
        raise SnowflakeConnectionError(f"Connection error: {e}") from e

    try:
        yield conn
    finally:
        try:
            conn.close()
            logger.debug("Closed Snowflake connection")
        except Exception as e:
            logger.warning(
                "Error closing Snowflake connection",
                extra={"error": str(e)}
            )


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

class MockSnowflakeCursor:
    """
    In-memory cursor.

    Implements just enough of the cursor interface to support the lesson
    and client storage repositories without a real database. Queries are
    dispatched by pattern matching on the statement, so it only understands
    the statements those repositories issue.
    """

    def __init__(self, connection: "MockSnowflakeConnection") -> None:
        self._connection = connection
        self._storage = connection._storage
        self._results: list = []
        self._rowcount: int = 0

    def execute(self, query: str, params: Optional[tuple] = None) -> 'MockSnowflakeCursor':
        """Execute a query against mock storage."""
        logger.debug(
            "Mock cursor execute",
            extra={"query": query.strip()[:100], "params": params}
        )

        failure = self._connection._next_failure
        if failure is not None:
            self._connection._next_failure = None
            raise failure

        query_upper = " ".join(query.upper().split())
        params = params or ()
        self._results = []
        self._rowcount = 0

        if query_upper.startswith('CREATE TABLE'):
            return self

        if query_upper == 'SELECT 1':
            self._results = [(1,)]
        elif 'CLIENT_STORAGE' in query_upper:
            self._handle_client_storage(query_upper, params)
        elif 'LESSONS' in query_upper:
            self._handle_lessons(query_upper, params)

        return self

    def _handle_lessons(self, query: str, params: tuple) -> None:
        lessons = self._storage['lessons']

        if query.startswith('INSERT INTO'):
            lesson_id, title, start_at, end_at, props = params
            lessons[lesson_id] = {
                'lesson_id': lesson_id,
                'title': title,
                'start_at': start_at,
                'end_at': end_at,
                'extended_props': props,
                'student': None,
                'coach': None,
                'rink': None,
            }
            self._rowcount = 1

        elif query.startswith('UPDATE'):
            title, start_at, end_at, props, lesson_id = params
            row = lessons.get(lesson_id)
            if row is not None:
                row.update({
                    'title': title,
                    'start_at': start_at,
                    'end_at': end_at,
                    'extended_props': props,
                    'student': None,
                    'coach': None,
                    'rink': None,
                })
                self._rowcount = 1

        elif query.startswith('DELETE FROM'):
            self._rowcount = 1 if lessons.pop(params[0], None) is not None else 0

        elif query.startswith('SELECT'):
            rows = sorted(
                lessons.values(),
                key=lambda r: (str(r['start_at']), r['lesson_id']),
            )
            self._results = [
                (
                    r['lesson_id'], r['title'], r['start_at'], r['end_at'],
                    r['extended_props'], r['student'], r['coach'], r['rink'],
                )
                for r in rows
            ]

    def _handle_client_storage(self, query: str, params: tuple) -> None:
        values = self._storage['client_storage']

        if query.startswith('MERGE INTO'):
            scope, owner_id, key, value = params[:4]
            values[(scope, owner_id, key)] = value
            self._rowcount = 1

        elif query.startswith('DELETE FROM'):
            self._rowcount = 1 if values.pop(tuple(params), None) is not None else 0

        elif query.startswith('SELECT'):
            value = values.get(tuple(params))
            self._results = [(value,)] if value is not None else []

    def fetchone(self):
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        return list(self._results)

    def close(self) -> None:
        pass

    @property
    def rowcount(self) -> int:
        return self._rowcount


class MockSnowflakeConnection:
    """
    In-memory connection used by mock mode and the tests.

    Two dictionaries play the two tables. Nothing survives a restart.
    """

    def __init__(self) -> None:
        # lessons: {lesson_id: row_dict}
        # client_storage: {(scope, owner_id, key): value}
        self._storage: dict[str, dict] = {
            'lessons': {},
            'client_storage': {},
        }
        self._next_failure: Optional[Exception] = None

        logger.info("Initialized mock Snowflake connection (in-memory)")

    def cursor(self) -> MockSnowflakeCursor:
        """Create a mock cursor."""
        return MockSnowflakeCursor(self)

    def commit(self) -> None:
        logger.debug("Mock connection commit")

    def rollback(self) -> None:
        logger.debug("Mock connection rollback")

    def close(self) -> None:
        logger.debug("Mock connection close")

    # Helper methods for testing
    def _add_lesson_row(self, lesson_id: str, **columns) -> None:
        """
        Put a raw row in mock storage (for test setup).

        Lets tests create legacy rows with flat student/coach/rink columns
        that the repository itself never writes.
        """
        row = {
            'lesson_id': lesson_id,
            'title': None,
            'start_at': None,
            'end_at': None,
            'extended_props': None,
            'student': None,
            'coach': None,
            'rink': None,
        }
        row.update(columns)
        self._storage['lessons'][lesson_id] = row

    def _fail_next(self, error: Exception) -> None:
        """Make the next statement raise `error` (for test setup)."""
        self._next_failure = error

    def _clear(self) -> None:
        """Empty both tables."""
        for table in self._storage.values():
            table.clear()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

@contextmanager
def create_snowflake_connection(
    config: Optional[SnowflakeConfig] = None,
    mock_mode: bool = False,
) -> Generator[SnowflakeConnection, None, None]:
    """
    Open the connection the settings ask for: in-memory or real.

    Args:
        config: Snowflake configuration (required if not mock_mode)
        mock_mode: If True, return in-memory mock connection

    Yields:
        SnowflakeConnection implementation (real or mock)
    """
    if mock_mode:
        conn = MockSnowflakeConnection()
        try:
            yield conn
        finally:
            conn.close()
    else:
        if config is None:
            raise ValueError("config is required when not in mock mode")

        with get_snowflake_connection(config) as conn:
            yield conn
