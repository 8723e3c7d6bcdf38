"""
Pooled async Redis client shared by the response cache and the realtime
transport.

Cache operations (get/set/delete) degrade to a miss or a no-op when Redis is
unreachable; pub/sub and membership operations raise so the broadcaster can
fall back.
"""

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from assistant_core.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    def __init__(self, url: str, max_connections: int = 20):
        self.url = url
        self.max_connections = max_connections
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None

    @property
    def initialized(self) -> bool:
        return self.client is not None

    async def initialize(self) -> None:
        if self.client is not None:
            return

        pool = ConnectionPool.from_url(
            self.url,
            max_connections=self.max_connections,
            decode_responses=True,
            socket_connect_timeout=10,
            socket_timeout=10,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        client = redis.Redis(connection_pool=pool)
        try:
            await client.ping()
        except RedisError as e:
            logger.error("Redis connection failed", error=str(e), url_preview=self.url[:30] + "...")
            await pool.disconnect()
            raise RuntimeError("Redis initialization failed") from e

        self.pool = pool
        self.client = client
        logger.info("Redis client initialized", max_connections=self.max_connections)

    async def close(self) -> None:
        if self.client is None:
            return
        try:
            await self.client.aclose()
            await self.pool.disconnect()
            logger.info("Redis client closed")
        except RedisError as e:
            logger.error("Error closing Redis client", error=str(e))
        finally:
            self.client = None
            self.pool = None

    async def _redis(self) -> redis.Redis:
        if self.client is None:
            logger.warning("Redis used before startup, connecting now")
            await self.initialize()
        return self.client

    async def ping(self) -> bool:
        try:
            return bool(await (await self._redis()).ping())
        except (RedisError, RuntimeError) as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    # -- cache operations: failures are logged and treated as misses --

    async def get(self, key: str) -> str | None:
        try:
            return await (await self._redis()).get(key) or None
        except (RedisError, RuntimeError) as e:
            logger.error("Redis GET failed", key=key[:40], error=str(e))
            return None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        try:
            client = await self._redis()
            if ttl_s:
                return bool(await client.setex(key, ttl_s, value))
            return bool(await client.set(key, value))
        except (RedisError, RuntimeError) as e:
            logger.error("Redis SET failed", key=key[:40], error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        try:
            return await (await self._redis()).delete(key) > 0
        except (RedisError, RuntimeError) as e:
            logger.error("Redis DELETE failed", key=key[:40], error=str(e))
            return False

    # -- realtime operations: failures propagate --

    async def publish(self, channel: str, message: str) -> int:
        """Publish and return the number of receiving subscribers."""
        return int(await (await self._redis()).publish(channel, message))

    async def smembers(self, key: str) -> set[str]:
        return set(await (await self._redis()).smembers(key))

    async def sadd(self, key: str, *members: str) -> int:
        return int(await (await self._redis()).sadd(key, *members))

    async def srem(self, key: str, *members: str) -> int:
        return int(await (await self._redis()).srem(key, *members))
