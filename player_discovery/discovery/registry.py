"""Liveness registry for announced players.

Each announcement string maps to the number of poll cycles it has left
before the player is considered gone.
"""

import logging
import threading
from typing import Iterator

logger = logging.getLogger(__name__)


class LivenessRegistry:
    """Tracks players by raw announcement string with a countdown per entry."""

    def __init__(self, max_lifetime: int):
        """Initialize registry.

        Args:
            max_lifetime: Cycles a fresh announcement stays alive.
        """
        if max_lifetime < 1:
            raise ValueError(f"max_lifetime must be positive, got {max_lifetime}")
        self.max_lifetime = max_lifetime
        self._entries: dict[str, int] = {}
        self._lock = threading.RLock()

    def register(self, key: str) -> bool:
        """Create or refresh an entry with the full lifetime.

        Returns:
            True if the key was not already tracked.
        """
        with self._lock:
            is_new = key not in self._entries
            if is_new:
                logger.debug("New player: %s", key)
            self._entries[key] = self.max_lifetime
        return is_new

    def decay(self) -> list[str]:
        """Age every entry by one cycle.

        Returns:
            Keys whose lifetime ran out this cycle. They are removed,
            so every stored entry has at least one cycle left.
        """
        expired = []
        with self._lock:
            for key in list(self._entries):
                self._entries[key] -= 1
                if self._entries[key] <= 0:
                    del self._entries[key]
                    expired.append(key)

        for key in expired:
            logger.debug("Player expired: %s", key)
        return expired

    def available(self) -> Iterator[str]:
        """Lazily yield keys that are still alive.

        Iterates over a snapshot of the keys, so polling while a consumer
        is still iterating doesn't affect what it sees.
        """
        with self._lock:
            snapshot = list(self._entries)
        return (key for key in snapshot)

    def lifetime(self, key: str) -> int:
        """Remaining cycles for a key, 0 if unknown."""
        with self._lock:
            return self._entries.get(key, 0)

    def clear(self) -> None:
        """Forget every tracked player."""
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
