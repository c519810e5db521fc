"""Set of webhook nonces already accepted, for replay rejection.

Memory is bounded by clearing the whole set once it grows past ``max_size``.
Right after a clear, a previously seen nonce would be accepted again; a
time-bucketed store that expires nonces by age would close that gap.
"""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class NonceStore:
    def __init__(self, max_size: int = 10000) -> None:
        self._max_size = max_size
        self._seen: set[str] = set()
        self._lock = threading.Lock()

    def add_if_absent(self, nonce: str) -> bool:
        """Record ``nonce``. Returns False if it had already been recorded."""
        with self._lock:
            if nonce in self._seen:
                return False
            if len(self._seen) >= self._max_size:
                self._seen.clear()
                logger.debug("Cleared nonce store after reaching %d entries", self._max_size)
            self._seen.add(nonce)
            return True

    def __contains__(self, nonce: str) -> bool:
        with self._lock:
            return nonce in self._seen

    def __len__(self) -> int:
        return len(self._seen)
