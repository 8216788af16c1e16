#!/usr/bin/env python3
"""
Import lesson documents into Snowflake.

Reads a JSON export of the old `lessons` collection and writes every
document to the lessons table in the current nested shape. Each document
goes through the normalizer first, so legacy flat fields, "The Den" style
rink names and epoch timestamps are all cleaned up on the way in. Ids are
kept so links to existing lessons still work.

The export may be either a list of documents with an "id" field, or an
object mapping id -> document.

Usage:
    python scripts/import_lessons.py --file lessons.json
    python scripts/import_lessons.py --file lessons.json --dry-run
    python scripts/import_lessons.py --check

Requires:
    - .env file with Snowflake credentials (or SNOWFLAKE_MOCK_MODE=true)
"""

import json
import os
import sys
from pathlib import Path

# Add project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def load_export(filepath: str) -> list[tuple[str, dict]]:
    """
    Read an export file into (id, document) pairs.

    Documents without an id are skipped with a warning.
    """
    with open(filepath, 'r', encoding='utf-8') as f:
        payload = json.load(f)

    if isinstance(payload, dict):
        items = [(str(key), value) for key, value in payload.items()]
    elif isinstance(payload, list):
        items = []
        for index, value in enumerate(payload):
            if not isinstance(value, dict) or value.get('id') is None:
                print(f"[SKIP] Entry {index} has no id")
                continue
            document = {k: v for k, v in value.items() if k != 'id'}
            items.append((str(value['id']), document))
    else:
        raise ValueError("Export must be a JSON list or object")

    return [(lesson_id, doc) for lesson_id, doc in items if isinstance(doc, dict)]


def prepare_documents(items: list[tuple[str, dict]]) -> list[tuple[str, dict]]:
    """Normalize each raw document and rebuild it in the stored shape."""
    from skating_scheduler.core.lessons.normalizer import normalize_lesson, to_document

    prepared = []
    for lesson_id, raw in items:
        lesson = normalize_lesson(lesson_id, raw)
        if not lesson.student:
            print(f"[WARN] {lesson_id}: no student name")
        prepared.append((lesson_id, to_document(lesson)))
    return prepared


def _connection_context():
    from skating_scheduler.config.settings import get_settings
    from skating_scheduler.infrastructure.snowflake.client import create_snowflake_connection
    from skating_scheduler.main import _snowflake_config

    settings = get_settings()
    missing = settings.validate_required_fields()
    if missing:
        print(f"ERROR: Missing configuration: {', '.join(missing)}")
        sys.exit(1)

    return create_snowflake_connection(
        config=_snowflake_config(settings),
        mock_mode=settings.snowflake_mock_mode,
    )


def import_documents(documents: list[tuple[str, dict]], dry_run: bool = False) -> bool:
    """Write prepared documents to the lessons table."""
    from skating_scheduler.core.lessons.errors import PersistenceError
    from skating_scheduler.infrastructure.snowflake.repositories.lessons import LessonRepository

    if dry_run:
        print("\n=== DRY RUN - No data will be inserted ===\n")
        for lesson_id, document in documents:
            print(f"Would insert: {lesson_id} - {document['title']} @ {document['start']}")
        print(f"\nTotal: {len(documents)} lessons")
        return True

    with _connection_context() as conn:
        repository = LessonRepository(conn)
        repository.ensure_table()

        inserted = 0
        errors = 0

        for lesson_id, document in documents:
            try:
                repository.import_document(lesson_id, document)
                inserted += 1
                print(f"[OK] Inserted: {document['title']}")
            except PersistenceError as e:
                errors += 1
                print(f"[ERR] Error inserting {lesson_id}: {e}")

    print(f"\n=== Import Complete ===")
    print(f"Inserted: {inserted}")
    print(f"Errors: {errors}")

    return errors == 0


def check_connection() -> bool:
    """
    Round-trip a throwaway lesson: create, read back, delete.

    Confirms credentials, table access and write permissions in one go.
    """
    from datetime import datetime, timezone

    from skating_scheduler.core.lessons.errors import PersistenceError
    from skating_scheduler.core.lessons.models import DEFAULT_DURATION, Lesson
    from skating_scheduler.core.lessons.normalizer import to_document
    from skating_scheduler.infrastructure.snowflake.repositories.lessons import LessonRepository

    start = datetime.now(timezone.utc).replace(microsecond=0)
    probe = Lesson(
        student="Connection Check",
        coach="Silvia",
        rink="Den",
        start=start,
        end=start + DEFAULT_DURATION,
    )

    with _connection_context() as conn:
        repository = LessonRepository(conn)
        try:
            repository.ensure_table()
            lesson_id = repository.create(to_document(probe))
            print(f"[OK] Added probe lesson with id: {lesson_id}")

            records = repository.list_records()
            found = any(record.id == lesson_id for record in records)
            print(f"[{'OK' if found else 'ERR'}] Read back {len(records)} lessons")

            repository.delete(lesson_id)
            print("[OK] Deleted probe lesson")
            return found
        except PersistenceError as e:
            print(f"ERROR: Lesson store check failed: {e}")
            return False


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Import lessons to Snowflake')
    parser.add_argument('--file', help='JSON export of lesson documents')
    parser.add_argument('--dry-run', action='store_true', help='Parse only, don\'t insert')
    parser.add_argument('--check', action='store_true', help='Test the lesson store connection and exit')
    args = parser.parse_args()

    if args.check:
        sys.exit(0 if check_connection() else 1)

    if not args.file:
        parser.error("--file is required unless --check is given")

    if not os.path.exists(args.file):
        print(f"ERROR: Cannot find {args.file}")
        sys.exit(1)

    print(f"Reading lessons from: {args.file}")
    documents = prepare_documents(load_export(args.file))
    print(f"Found {len(documents)} lessons")

    if not documents:
        print("ERROR: No lessons found in export")
        sys.exit(1)

    coaches = {}
    for _, document in documents:
        coach = document['extendedProps']['coach']
        coaches[coach] = coaches.get(coach, 0) + 1

    print("\nLessons by coach:")
    for coach, count in sorted(coaches.items()):
        print(f"  {coach}: {count}")

    success = import_documents(documents, dry_run=args.dry_run)

    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
