"""In-process key-value store with TTL expiry."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Entry:
    value: str
    expires_at: Optional[float]


class InMemoryKeyValueStore:
    """Dictionary-backed store for development, tests and single-process use.

    Expired entries are invisible to every read and are purged lazily when
    touched or by ``purge_expired``.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """Initialize the store.

        Args:
            clock: Source of the current time in seconds (injectable for tests)
        """
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> Optional[_Entry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _expiry(self, ttl_seconds: Optional[int]) -> Optional[float]:
        if ttl_seconds is None:
            return None
        return self._clock() + ttl_seconds

    async def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry.value if entry else None

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        self._entries[key] = _Entry(value=value, expires_at=self._expiry(ttl_seconds))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def list_keys(self, prefix: str, limit: Optional[int] = None) -> list[str]:
        keys = sorted(
            key for key in list(self._entries) if key.startswith(prefix) and self._live(key)
        )
        return keys[:limit] if limit is not None else keys

    async def increment(self, key: str, ttl_seconds: int) -> int:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                count = 1
                expires_at = self._expiry(ttl_seconds)
            else:
                count = int(entry.value) + 1
                expires_at = entry.expires_at
            self._entries[key] = _Entry(value=str(count), expires_at=expires_at)
            return count

    def purge_expired(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.expires_at is not None and entry.expires_at <= now
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired keys")
        return len(expired)

    def __len__(self) -> int:
        return sum(1 for key in list(self._entries) if self._live(key))
