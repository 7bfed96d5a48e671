"""
Abstract Storage Provider Interface.

Defines the contract that all storage backends must implement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field


class StorageConfig(BaseModel):
    """Configuration for storage provider."""

    backend: str = Field(default="memory", description="Storage backend type")
    connection_string: Optional[str] = Field(default=None, description="Connection URL")
    pool_size: int = Field(default=10, ge=1, le=100, description="Connection pool size")
    timeout_seconds: int = Field(default=30, ge=1, le=300, description="Operation timeout")

    # Redis-specific
    redis_host: Optional[str] = Field(default="localhost")
    redis_port: int = Field(default=6379, ge=1, le=65535)
    redis_db: int = Field(default=0, ge=0)
    redis_password: Optional[str] = None
    redis_ssl: bool = False


class AbstractStorageProvider(ABC):
    """
    Abstract storage provider.

    All storage backends (memory, Redis) must implement this interface.
    Supports:
    - Key-value operations with TTL and set-if-absent
    - Compare-and-set on whole values
    - Hash operations with integer increments
    - Idempotent increments keyed by a settlement token
    - Set operations (for the scheduled-domain index)
    """

    def __init__(self, config: StorageConfig):
        """Initialize storage provider with configuration."""
        self.config = config

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to storage backend."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to storage backend."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if storage backend is healthy."""

    # Key-Value Operations

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get value by key."""

    @abstractmethod
    async def set(
        self,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None,
        only_if_absent: bool = False,
    ) -> bool:
        """Set value with optional TTL. Returns False if *only_if_absent* and the key exists."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete key."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if key exists."""

    @abstractmethod
    async def compare_and_set(
        self,
        key: str,
        expected: Optional[str],
        value: str,
    ) -> bool:
        """Atomically replace *key* with *value* if it currently equals *expected*."""

    @abstractmethod
    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Atomically delete *key* if it currently equals *expected*."""

    # Hash Operations

    @abstractmethod
    async def hget(self, key: str, field: str) -> Optional[str]:
        """Get hash field value."""

    @abstractmethod
    async def hset(self, key: str, field: str, value: str) -> bool:
        """Set hash field value."""

    @abstractmethod
    async def hgetall(self, key: str) -> dict[str, str]:
        """Get all hash fields."""

    @abstractmethod
    async def hdel(self, key: str, field: str) -> bool:
        """Delete hash field."""

    @abstractmethod
    async def hincrby(self, key: str, field: str, amount: int) -> int:
        """Increment an integer hash field. Returns the new value."""

    @abstractmethod
    async def hincrby_once(
        self,
        key: str,
        field: str,
        amount: int,
        token_key: str,
        token: str,
    ) -> bool:
        """Increment *field* by *amount* unless *token* is already recorded.

        The increment and the token marker are written atomically: either
        both land or neither does. Returns True if the increment was applied.
        """

    # Set Operations

    @abstractmethod
    async def sadd(self, key: str, member: str) -> bool:
        """Add member to set. Returns True if newly added."""

    @abstractmethod
    async def srem(self, key: str, member: str) -> bool:
        """Remove member from set."""

    @abstractmethod
    async def smembers(self, key: str) -> set[str]:
        """Get all set members."""

    # Pattern Operations

    @abstractmethod
    async def keys(self, pattern: str) -> list[str]:
        """Get keys matching pattern."""
