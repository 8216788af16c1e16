"""
Per-client key-value persistence.

The browser app kept a few small values in localStorage and sessionStorage:
the autocomplete student list, the filter selections and the unlock flag.
Here the same values live behind the ClientStorage protocol, one instance
per owner (a client for long-lived values, a browser session for the unlock
flag). Values are plain strings; callers encode anything richer.
"""

from typing import Optional, Protocol


# Storage keys
STUDENTS_KEY = "students"
COACH_FILTER_KEY = "coach_filter"
STUDENT_FILTER_KEY = "student_filter"
UNLOCK_KEY = "calendar_unlocked"


class ClientStorage(Protocol):
    """String key-value storage scoped to a single owner."""

    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None."""
        ...

    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        ...

    def remove(self, key: str) -> None:
        """Delete a key. Removing a missing key is not an error."""
        ...


class MemoryStorage:
    """Dictionary-backed ClientStorage for tests and one-off scripts."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)
