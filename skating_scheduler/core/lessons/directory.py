"""
Autocomplete list of previously entered student names.

Purely a typing convenience: it lives in client storage, is never
synchronized with the lesson store and may well list students who no
longer have lessons.
"""

import json
import logging

from .storage import STUDENTS_KEY, ClientStorage

logger = logging.getLogger(__name__)


class StudentDirectory:
    """Deduplicated, alphabetized student names backed by client storage."""

    def __init__(self, storage: ClientStorage) -> None:
        self._storage = storage

    @property
    def names(self) -> list[str]:
        raw = self._storage.get(STUDENTS_KEY)
        if not raw:
            return []
        try:
            names = json.loads(raw)
        except (ValueError, TypeError):
            logger.warning("Discarding unreadable student list")
            return []
        if not isinstance(names, list):
            return []
        return [name for name in names if isinstance(name, str)]

    def __contains__(self, name: str) -> bool:
        return name.strip() in self.names

    def add(self, name: str) -> bool:
        """
        Remember a student name.

        Returns True if the name was new. Blank names are ignored.
        """
        trimmed = name.strip()
        if not trimmed:
            return False

        names = self.names
        if trimmed in names:
            return False

        names.append(trimmed)
        names.sort(key=str.casefold)
        self._storage.set(STUDENTS_KEY, json.dumps(names))
        logger.debug("Added student to directory", extra={"student": trimmed})
        return True

    def clear(self) -> None:
        self._storage.remove(STUDENTS_KEY)
