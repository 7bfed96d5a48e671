"""
Redis Storage Provider.

Production backend with connection pooling. Compare-and-set and idempotent
increments use WATCH/MULTI optimistic transactions.
"""

from __future__ import annotations

from typing import Any, Optional
import logging

from .provider import AbstractStorageProvider, StorageConfig

try:
    import redis.asyncio as aioredis
    from redis.exceptions import WatchError

    _REDIS_AVAILABLE = True
except ImportError:
    _REDIS_AVAILABLE = False

logger = logging.getLogger(__name__)


class RedisStorageProvider(AbstractStorageProvider):
    """
    Redis storage provider.

    Features:
    - Connection pooling
    - TTL and NX support for leases
    - Optimistic transactions for settlement idempotency

    Requires: redis package (``pip install knowledgedist[redis]``)
    """

    def __init__(self, config: StorageConfig, client: Any = None):
        """Initialize Redis storage.

        Args:
            config: Storage configuration.
            client: Pre-built ``redis.asyncio`` compatible client; when given,
                no connection pool is created.
        """
        super().__init__(config)
        self._client = client
        self._pool = None

    async def connect(self) -> None:
        """Establish connection to Redis."""
        if self._client is None:
            if not _REDIS_AVAILABLE:
                raise ImportError(
                    "redis package is required for RedisStorageProvider. "
                    "Install with: pip install knowledgedist[redis]"
                )
            if self.config.connection_string:
                self._pool = aioredis.ConnectionPool.from_url(
                    self.config.connection_string,
                    max_connections=self.config.pool_size,
                    socket_timeout=self.config.timeout_seconds,
                    decode_responses=True,
                )
            else:
                pool_kwargs: dict[str, Any] = {
                    "host": self.config.redis_host,
                    "port": self.config.redis_port,
                    "db": self.config.redis_db,
                    "password": self.config.redis_password,
                    "max_connections": self.config.pool_size,
                    "socket_timeout": self.config.timeout_seconds,
                    "socket_connect_timeout": self.config.timeout_seconds,
                    "decode_responses": True,
                }
                if self.config.redis_ssl:
                    pool_kwargs["connection_class"] = aioredis.SSLConnection
                self._pool = aioredis.ConnectionPool(**pool_kwargs)
            self._client = aioredis.Redis(connection_pool=self._pool)

        await self._client.ping()

    async def disconnect(self) -> None:
        """Close connection to Redis."""
        if self._client is not None:
            await self._client.aclose()
        if self._pool is not None:
            await self._pool.disconnect()

    async def health_check(self) -> bool:
        """Check if Redis is healthy."""
        try:
            if self._client is not None:
                await self._client.ping()
                return True
        except Exception:
            logger.debug("Redis health check failed", exc_info=True)
        return False

    # Key-Value Operations

    async def get(self, key: str) -> Optional[str]:
        """Get value by key."""
        return await self._client.get(key)

    async def set(
        self,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None,
        only_if_absent: bool = False,
    ) -> bool:
        """Set value with optional TTL."""
        result = await self._client.set(key, value, ex=ttl_seconds, nx=only_if_absent)
        return bool(result)

    async def delete(self, key: str) -> bool:
        """Delete key."""
        return await self._client.delete(key) > 0

    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        return await self._client.exists(key) > 0

    async def compare_and_set(
        self,
        key: str,
        expected: Optional[str],
        value: str,
    ) -> bool:
        """Replace *key* if it currently equals *expected*."""
        async with self._client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    if await pipe.get(key) != expected:
                        return False
                    pipe.multi()
                    pipe.set(key, value)
                    await pipe.execute()
                    return True
                except WatchError:
                    logger.debug("compare_and_set retry on %s", key)
                    continue

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Delete *key* if it currently equals *expected*."""
        async with self._client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    if await pipe.get(key) != expected:
                        return False
                    pipe.multi()
                    pipe.delete(key)
                    await pipe.execute()
                    return True
                except WatchError:
                    continue

    # Hash Operations

    async def hget(self, key: str, field: str) -> Optional[str]:
        """Get hash field value."""
        return await self._client.hget(key, field)

    async def hset(self, key: str, field: str, value: str) -> bool:
        """Set hash field value."""
        result = await self._client.hset(key, field, value)
        return result >= 0

    async def hgetall(self, key: str) -> dict[str, str]:
        """Get all hash fields."""
        return await self._client.hgetall(key)

    async def hdel(self, key: str, field: str) -> bool:
        """Delete hash field."""
        return await self._client.hdel(key, field) > 0

    async def hincrby(self, key: str, field: str, amount: int) -> int:
        """Increment an integer hash field."""
        return int(await self._client.hincrby(key, field, int(amount)))

    async def hincrby_once(
        self,
        key: str,
        field: str,
        amount: int,
        token_key: str,
        token: str,
    ) -> bool:
        """Increment *field* unless *token* was already applied."""
        async with self._client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(token_key)
                    if await pipe.hexists(token_key, token):
                        return False
                    pipe.multi()
                    pipe.hset(token_key, token, str(int(amount)))
                    pipe.hincrby(key, field, int(amount))
                    await pipe.execute()
                    return True
                except WatchError:
                    continue

    # Set Operations

    async def sadd(self, key: str, member: str) -> bool:
        """Add member to set."""
        return await self._client.sadd(key, member) > 0

    async def srem(self, key: str, member: str) -> bool:
        """Remove member from set."""
        return await self._client.srem(key, member) > 0

    async def smembers(self, key: str) -> set[str]:
        """Get all set members."""
        return set(await self._client.smembers(key))

    # Pattern Operations

    async def keys(self, pattern: str) -> list[str]:
        """Get keys matching pattern."""
        return sorted([key async for key in self._client.scan_iter(match=pattern)])
