"""
Edit-rights gate.

A single shared password decides whether add/edit/delete are offered. This
keeps casual visitors from changing the schedule by accident. It is not a
security boundary: the password ships with the deployment and the unlock
flag sits in storage the client controls.
"""

import hmac
import logging

from .errors import AuthError
from .storage import UNLOCK_KEY, ClientStorage

logger = logging.getLogger(__name__)

_UNLOCKED = "1"


class AccessGate:
    """
    Locked/unlocked state for one browser session.

    Starts locked unless the session storage already records an unlock.
    """

    def __init__(self, storage: ClientStorage, secret: str) -> None:
        self._storage = storage
        self._secret = secret

    @property
    def locked(self) -> bool:
        return self._storage.get(UNLOCK_KEY) != _UNLOCKED

    def attempt_unlock(self, secret: str) -> None:
        """Unlock on the right password; raise AuthError otherwise."""
        if not hmac.compare_digest(secret.encode(), self._secret.encode()):
            logger.warning("Incorrect edit password")
            raise AuthError("Incorrect password.")

        self._storage.set(UNLOCK_KEY, _UNLOCKED)
        logger.info("Editing unlocked")

    def relock(self) -> None:
        self._storage.remove(UNLOCK_KEY)
        logger.info("Editing locked")
