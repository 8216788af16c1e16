"""
Unit tests for the Snowflake repositories, run against the in-memory
mock connection.
"""

import json

import pytest

from skating_scheduler.core.lessons.errors import LessonNotFoundError, PersistenceError
from skating_scheduler.core.lessons.normalizer import normalize_lesson
from skating_scheduler.infrastructure.snowflake.client import MockSnowflakeConnection
from skating_scheduler.infrastructure.snowflake.repositories.client_storage import (
    LOCAL_SCOPE,
    SESSION_SCOPE,
    ClientStorageRepository,
)
from skating_scheduler.infrastructure.snowflake.repositories.lessons import LessonRepository

DOCUMENT = {
    "title": "Amy - Silvia (Den)",
    "start": "2024-03-01T14:00:00+00:00",
    "end": "2024-03-01T14:30:00+00:00",
    "extendedProps": {"student": "Amy", "coach": "Silvia", "rink": "Den"},
}


@pytest.fixture
def connection() -> MockSnowflakeConnection:
    return MockSnowflakeConnection()


@pytest.fixture
def repository(connection) -> LessonRepository:
    repo = LessonRepository(connection)
    repo.ensure_table()
    return repo


# ---------------------------------------------------------------------------
# Lesson Repository
# ---------------------------------------------------------------------------

class TestLessonWrites:
    """Tests for create/update/delete."""

    def test_create_assigns_id(self, repository):
        lesson_id = repository.create(DOCUMENT)

        records = repository.list_records()
        assert [r.id for r in records] == [lesson_id]
        assert records[0].data == DOCUMENT

    def test_created_ids_are_unique(self, repository):
        assert repository.create(DOCUMENT) != repository.create(DOCUMENT)

    def test_update_replaces_document(self, repository):
        lesson_id = repository.create(DOCUMENT)
        changed = dict(DOCUMENT, title="Amy - John (Den)")
        changed["extendedProps"] = dict(DOCUMENT["extendedProps"], coach="John")

        repository.update(lesson_id, changed)

        assert repository.list_records()[0].data == changed

    def test_update_missing_lesson(self, repository):
        with pytest.raises(LessonNotFoundError):
            repository.update("nope", DOCUMENT)

    def test_delete(self, repository):
        lesson_id = repository.create(DOCUMENT)
        repository.delete(lesson_id)

        assert repository.list_records() == []

    def test_delete_missing_lesson(self, repository):
        with pytest.raises(LessonNotFoundError):
            repository.delete("nope")

    def test_database_error_becomes_persistence_error(self, repository, connection):
        connection._fail_next(RuntimeError("warehouse suspended"))

        with pytest.raises(PersistenceError, match="warehouse suspended"):
            repository.create(DOCUMENT)

    def test_import_keeps_id(self, repository):
        repository.import_document("legacy-1", DOCUMENT)
        assert repository.list_records()[0].id == "legacy-1"


class TestLessonReads:
    """Tests for reading rows back as documents."""

    def test_records_ordered_by_start(self, repository):
        late = dict(DOCUMENT, start="2024-03-01T16:00:00+00:00", end="2024-03-01T16:30:00+00:00")
        late_id = repository.create(late)
        early_id = repository.create(DOCUMENT)

        assert [r.id for r in repository.list_records()] == [early_id, late_id]

    def test_legacy_flat_row(self, repository, connection):
        """Rows imported from the old database carry flat columns."""
        connection._add_lesson_row(
            "old",
            start_at="2024-03-01T14:00:00Z",
            student="Bob",
            coach="John",
            rink="The Stadium",
        )

        record = repository.list_records()[0]
        assert record.data == {
            "start": "2024-03-01T14:00:00Z",
            "student": "Bob",
            "coach": "John",
            "rink": "The Stadium",
        }

        lesson = normalize_lesson(record.id, record.data)
        assert lesson.title == "Bob - John (Stadium)"

    def test_update_clears_legacy_columns(self, repository, connection):
        connection._add_lesson_row("old", student="Bob", coach="John", rink="Den")

        repository.update("old", DOCUMENT)

        data = repository.list_records()[0].data
        assert "student" not in data
        assert data["extendedProps"]["student"] == "Amy"

    def test_unreadable_props_are_dropped(self, repository, connection):
        connection._add_lesson_row("bad", extended_props="{oops", student="Cat")

        data = repository.list_records()[0].data
        assert "extendedProps" not in data
        assert data["student"] == "Cat"

    def test_read_failure_is_persistence_error(self, repository, connection):
        connection._fail_next(RuntimeError("timeout"))

        with pytest.raises(PersistenceError):
            repository.list_records()

    def test_ping(self, repository):
        repository.ping()


class TestLessonSubscriptions:
    """Tests for snapshot delivery."""

    def test_subscribe_delivers_initial_snapshot(self, repository):
        repository.create(DOCUMENT)
        received = []

        repository.subscribe(received.append)

        assert len(received) == 1
        assert len(received[0]) == 1

    def test_writes_notify_subscribers(self, repository):
        received = []
        repository.subscribe(received.append)

        lesson_id = repository.create(DOCUMENT)
        repository.delete(lesson_id)

        assert [len(snapshot) for snapshot in received] == [0, 1, 0]

    def test_refresh_picks_up_outside_changes(self, repository, connection):
        received = []
        repository.subscribe(received.append)

        connection._add_lesson_row("other", start_at="2024-03-01T14:00:00Z", student="Bob")

        assert repository.refresh() is True
        assert received[-1][0].id == "other"

    def test_refresh_without_changes_is_silent(self, repository):
        received = []
        repository.subscribe(received.append)

        assert repository.refresh() is False
        assert len(received) == 1

    def test_refresh_failure_keeps_last_snapshot(self, repository, connection):
        received = []
        repository.subscribe(received.append)
        connection._fail_next(RuntimeError("timeout"))

        assert repository.refresh() is False
        assert len(received) == 1

    def test_close_cancels_subscriptions(self, repository):
        subscription = repository.subscribe(lambda snapshot: None)

        repository.close()

        assert not subscription.active


# ---------------------------------------------------------------------------
# Client Storage Repository
# ---------------------------------------------------------------------------

class TestClientStorageRepository:
    """Tests for per-client key-value storage."""

    @pytest.fixture(autouse=True)
    def _table(self, connection):
        ClientStorageRepository.ensure_table(connection)

    def test_get_missing_key(self, connection):
        assert ClientStorageRepository(connection, LOCAL_SCOPE, "c1").get("students") is None

    def test_set_then_get(self, connection):
        storage = ClientStorageRepository(connection, LOCAL_SCOPE, "c1")
        storage.set("students", json.dumps(["Amy"]))

        assert storage.get("students") == '["Amy"]'

    def test_set_overwrites(self, connection):
        storage = ClientStorageRepository(connection, LOCAL_SCOPE, "c1")
        storage.set("coach_filter", "John")
        storage.set("coach_filter", "Sherry")

        assert storage.get("coach_filter") == "Sherry"

    def test_remove(self, connection):
        storage = ClientStorageRepository(connection, LOCAL_SCOPE, "c1")
        storage.set("coach_filter", "John")
        storage.remove("coach_filter")
        storage.remove("coach_filter")

        assert storage.get("coach_filter") is None

    def test_owners_are_isolated(self, connection):
        ClientStorageRepository(connection, LOCAL_SCOPE, "c1").set("coach_filter", "John")

        assert ClientStorageRepository(connection, LOCAL_SCOPE, "c2").get("coach_filter") is None

    def test_scopes_are_isolated(self, connection):
        ClientStorageRepository(connection, SESSION_SCOPE, "x").set("calendar_unlocked", "1")

        assert ClientStorageRepository(connection, LOCAL_SCOPE, "x").get("calendar_unlocked") is None

    def test_write_failure_is_persistence_error(self, connection):
        connection._fail_next(RuntimeError("offline"))

        with pytest.raises(PersistenceError):
            ClientStorageRepository(connection, LOCAL_SCOPE, "c1").set("students", "[]")
