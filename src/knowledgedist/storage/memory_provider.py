"""
In-Memory Storage Provider.

Simple in-memory implementation for development and testing.
"""

from __future__ import annotations

import fnmatch
import time
from collections import defaultdict
from typing import Optional

from .provider import AbstractStorageProvider, StorageConfig


class MemoryStorageProvider(AbstractStorageProvider):
    """
    In-memory storage provider.

    Uses Python dictionaries for storage. Data is lost on restart.
    No method awaits between reading and writing, so every operation is
    atomic with respect to other coroutines on the same event loop.
    """

    def __init__(self, config: Optional[StorageConfig] = None):
        """Initialize in-memory storage."""
        super().__init__(config or StorageConfig(backend="memory"))
        self._data: dict[str, str] = {}
        self._hashes: dict[str, dict[str, str]] = defaultdict(dict)
        self._sets: dict[str, set[str]] = defaultdict(set)
        self._expires_at: dict[str, float] = {}
        self._connected = False

    async def connect(self) -> None:
        """Establish connection (no-op for memory)."""
        self._connected = True

    async def disconnect(self) -> None:
        """Close connection (no-op for memory)."""
        self._connected = False

    async def health_check(self) -> bool:
        """Check if storage is healthy."""
        return self._connected

    def _live(self, key: str) -> Optional[str]:
        deadline = self._expires_at.get(key)
        if deadline is not None and time.monotonic() >= deadline:
            self._data.pop(key, None)
            self._expires_at.pop(key, None)
        return self._data.get(key)

    # Key-Value Operations

    async def get(self, key: str) -> Optional[str]:
        """Get value by key."""
        return self._live(key)

    async def set(
        self,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None,
        only_if_absent: bool = False,
    ) -> bool:
        """Set value with optional TTL."""
        if only_if_absent and self._live(key) is not None:
            return False
        self._data[key] = value
        if ttl_seconds is not None:
            self._expires_at[key] = time.monotonic() + ttl_seconds
        else:
            self._expires_at.pop(key, None)
        return True

    async def delete(self, key: str) -> bool:
        """Delete key."""
        self._expires_at.pop(key, None)
        return self._data.pop(key, None) is not None

    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        return self._live(key) is not None

    async def compare_and_set(
        self,
        key: str,
        expected: Optional[str],
        value: str,
    ) -> bool:
        """Replace *key* if it currently equals *expected*."""
        if self._live(key) != expected:
            return False
        self._data[key] = value
        return True

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Delete *key* if it currently equals *expected*."""
        if self._live(key) != expected:
            return False
        return await self.delete(key)

    # Hash Operations

    async def hget(self, key: str, field: str) -> Optional[str]:
        """Get hash field value."""
        return self._hashes.get(key, {}).get(field)

    async def hset(self, key: str, field: str, value: str) -> bool:
        """Set hash field value."""
        self._hashes[key][field] = value
        return True

    async def hgetall(self, key: str) -> dict[str, str]:
        """Get all hash fields."""
        return dict(self._hashes.get(key, {}))

    async def hdel(self, key: str, field: str) -> bool:
        """Delete hash field."""
        if key in self._hashes and field in self._hashes[key]:
            del self._hashes[key][field]
            return True
        return False

    async def hincrby(self, key: str, field: str, amount: int) -> int:
        """Increment an integer hash field."""
        new_value = int(self._hashes[key].get(field, "0")) + int(amount)
        self._hashes[key][field] = str(new_value)
        return new_value

    async def hincrby_once(
        self,
        key: str,
        field: str,
        amount: int,
        token_key: str,
        token: str,
    ) -> bool:
        """Increment *field* unless *token* was already applied."""
        if token in self._hashes.get(token_key, {}):
            return False
        self._hashes[token_key][token] = str(int(amount))
        await self.hincrby(key, field, amount)
        return True

    # Set Operations

    async def sadd(self, key: str, member: str) -> bool:
        """Add member to set."""
        if member in self._sets[key]:
            return False
        self._sets[key].add(member)
        return True

    async def srem(self, key: str, member: str) -> bool:
        """Remove member from set."""
        if member not in self._sets.get(key, set()):
            return False
        self._sets[key].discard(member)
        return True

    async def smembers(self, key: str) -> set[str]:
        """Get all set members."""
        return set(self._sets.get(key, set()))

    # Pattern Operations

    async def keys(self, pattern: str) -> list[str]:
        """Get keys matching pattern."""
        names = [k for k in list(self._data) if self._live(k) is not None]
        names.extend(self._hashes)
        names.extend(self._sets)
        return sorted({k for k in names if fnmatch.fnmatch(k, pattern)})
