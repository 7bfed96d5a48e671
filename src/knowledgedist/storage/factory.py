"""Build a storage provider from a ``StorageConfig``."""

from __future__ import annotations

from .memory_provider import MemoryStorageProvider
from .provider import AbstractStorageProvider, StorageConfig
from .redis_provider import RedisStorageProvider


def create_provider(config: StorageConfig) -> AbstractStorageProvider:
    """Return the provider named by ``config.backend`` (not yet connected)."""
    backend = config.backend.lower()
    if backend == "memory":
        return MemoryStorageProvider(config)
    if backend == "redis":
        return RedisStorageProvider(config)
    raise ValueError(f"Unknown storage backend: {config.backend!r}")
