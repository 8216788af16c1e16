"""
Lesson store contract and snapshot subscriptions.

The store holds raw lesson documents. Consumers never poll it directly;
they subscribe and receive the complete current document list (not a
delta) once on subscribe and again after every change.

SnapshotPublisher is the shared bookkeeping any store implementation uses
to fan snapshots out to subscribers.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredRecord:
    """A document as it sits in the store, keyed by its store-assigned id."""
    id: str
    data: dict[str, Any] = field(default_factory=dict)


SnapshotCallback = Callable[[list[StoredRecord]], None]


class Subscription:
    """
    Handle returned by `subscribe`.

    `unsubscribe()` stops further callbacks and releases the publisher's
    reference to the callback. Calling it more than once is harmless.
    """

    def __init__(self, on_cancel: Optional[Callable[["Subscription"], None]] = None) -> None:
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._on_cancel is not None:
            on_cancel, self._on_cancel = self._on_cancel, None
            on_cancel(self)


class SnapshotPublisher:
    """
    Tracks subscribers and the last published snapshot.

    `publish` only notifies when the snapshot differs from the previous
    one, so a poll that finds nothing new is silent. A subscriber that
    raises is logged and skipped; it doesn't stop the others.
    """

    def __init__(self) -> None:
        self._subscribers: dict[Subscription, SnapshotCallback] = {}
        self._last: Optional[list[StoredRecord]] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def last_snapshot(self) -> Optional[list[StoredRecord]]:
        return list(self._last) if self._last is not None else None

    def add(self, callback: SnapshotCallback) -> Subscription:
        """
        Register a callback and deliver the last published snapshot to it.

        Stores publish a fresh snapshot before calling this, so the initial
        delivery is current.
        """
        subscription = Subscription(on_cancel=self._remove)
        self._subscribers[subscription] = callback
        if self._last is not None:
            self._deliver(callback, list(self._last))
        return subscription

    def publish(self, snapshot: list[StoredRecord]) -> bool:
        """Deliver a snapshot if it changed. Returns whether anyone was notified."""
        if self._last is not None and snapshot == self._last:
            return False
        self._last = list(snapshot)
        for subscription, callback in list(self._subscribers.items()):
            if subscription.active:
                self._deliver(callback, list(snapshot))
        return True

    def close(self) -> None:
        """Cancel every subscription."""
        for subscription in list(self._subscribers):
            subscription.unsubscribe()

    def _remove(self, subscription: Subscription) -> None:
        self._subscribers.pop(subscription, None)

    def _deliver(self, callback: SnapshotCallback, snapshot: list[StoredRecord]) -> None:
        try:
            callback(snapshot)
        except Exception as e:
            logger.error(
                "Snapshot subscriber failed",
                extra={"error": str(e), "record_count": len(snapshot)},
                exc_info=e,
            )


class LessonStore(Protocol):
    """
    Interface for the lesson document collection.

    Write methods raise PersistenceError when the store rejects them and
    never retry. Ids are assigned by the store.
    """

    def create(self, document: dict[str, Any]) -> str:
        """Add a document and return its new id."""
        ...

    def update(self, lesson_id: str, document: dict[str, Any]) -> None:
        """Replace the whole document stored under `lesson_id`."""
        ...

    def delete(self, lesson_id: str) -> None:
        """Remove the document stored under `lesson_id`."""
        ...

    def subscribe(self, callback: SnapshotCallback) -> Subscription:
        """Deliver full snapshots to `callback` until unsubscribed."""
        ...
