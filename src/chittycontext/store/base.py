"""
Key-value store contract.

The persistence layer only needs string keys, string values, per-key TTL,
prefix listing and an atomic counter. Backends implement this protocol.
"""

from typing import Optional, Protocol, runtime_checkable

DAY_SECONDS = 86_400


@runtime_checkable
class KeyValueStore(Protocol):
    """Async string-keyed store with per-key expiration."""

    async def get(self, key: str) -> Optional[str]:
        """Return the value for ``key`` or None if missing or expired."""
        ...

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Write ``value``; a None TTL means the key never expires."""
        ...

    async def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are not an error."""
        ...

    async def list_keys(self, prefix: str, limit: Optional[int] = None) -> list[str]:
        """Live keys starting with ``prefix``, sorted ascending."""
        ...

    async def increment(self, key: str, ttl_seconds: int) -> int:
        """
        Atomically add one to an integer counter and return the new value.

        The TTL is applied only when the counter is created, so repeated
        increments never extend the window.
        """
        ...
