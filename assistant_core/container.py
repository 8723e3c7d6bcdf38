"""
Explicit wiring of one isolated engine instance.

Redis and Postgres adapters are used when REDIS_URL / DATABASE_URL are set;
otherwise everything runs in-process.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from assistant_core.config import Settings, settings as default_settings
from assistant_core.db.pool import DatabasePoolManager
from assistant_core.infrastructure.observability.logging import get_logger
from assistant_core.jobs.response_queue import ResponseJobQueue
from assistant_core.services.broadcaster import Broadcaster
from assistant_core.services.completion_client import CompletionClient
from assistant_core.services.message_store import (
    InMemoryMessageStore,
    MessageStore,
    PostgresMessageStore,
)
from assistant_core.services.realtime_transport import (
    InMemoryTransport,
    RealtimeTransport,
    RedisTransport,
)
from assistant_core.services.redis_client import RedisClient
from assistant_core.services.response_cache import (
    MemoryResponseCache,
    RedisResponseCache,
    ResponseCache,
)

logger = get_logger(__name__)


@dataclass
class AssistantServices:
    config: Settings
    completion_client: CompletionClient
    cache: ResponseCache
    message_store: MessageStore
    transport: RealtimeTransport
    broadcaster: Broadcaster
    queue: ResponseJobQueue
    redis: RedisClient | None = None
    db_pool: DatabasePoolManager | None = None
    started: list[str] = field(default_factory=list)

    @property
    def assistant_ids(self) -> frozenset[str]:
        return frozenset(self.config.ASSISTANT_SENDER_IDS)

    def decision_options(self) -> dict[str, Any]:
        """Keyword arguments for `decide` taken from settings."""
        return {
            "assistant_ids": self.assistant_ids,
            "window_size": self.config.CONTEXT_WINDOW_SIZE,
            "momentum_window": timedelta(seconds=self.config.MOMENTUM_WINDOW_SECONDS),
        }

    async def start(self) -> None:
        """Open backing connections, then start the queue scheduler."""
        try:
            if self.db_pool is not None:
                await self.db_pool.initialize()
                self.started.append("database_pool")
            if self.redis is not None:
                await self.redis.initialize()
                self.started.append("redis")
            self.queue.start()
            self.started.append("response_queue")
        except Exception as e:
            logger.error("Failed to start assistant services", error=str(e), completed=self.started)
            await self.close()
            raise

        logger.info("Assistant services started", services=self.started)

    async def close(self) -> None:
        """Drain the queue, then close connections in reverse order."""
        errors = []

        if "response_queue" in self.started:
            try:
                await self.queue.shutdown()
            except Exception as e:
                logger.error("Error shutting down response queue", error=str(e))
                errors.append(f"Queue: {e}")

        if "redis" in self.started:
            try:
                await self.redis.close()
            except Exception as e:
                logger.error("Error closing Redis", error=str(e))
                errors.append(f"Redis: {e}")

        if "database_pool" in self.started:
            try:
                await self.db_pool.close()
            except Exception as e:
                logger.error("Error closing database pool", error=str(e))
                errors.append(f"Database: {e}")

        self.started.clear()
        if errors:
            logger.warning("Some services had shutdown errors", errors=errors)


def build_services(
    config: Settings | None = None,
    *,
    completion_client: CompletionClient | None = None,
    cache: ResponseCache | None = None,
    message_store: MessageStore | None = None,
    transport: RealtimeTransport | None = None,
) -> AssistantServices:
    """Build an engine instance; explicit collaborators override settings."""
    config = config or default_settings

    redis_client = RedisClient(config.REDIS_URL) if config.REDIS_URL else None
    db_pool = DatabasePoolManager(config) if config.DATABASE_URL else None

    if cache is None:
        cache = (
            RedisResponseCache(redis_client, default_ttl=config.CACHE_TTL_SECONDS)
            if redis_client
            else MemoryResponseCache(default_ttl=config.CACHE_TTL_SECONDS)
        )
    if message_store is None:
        message_store = (
            PostgresMessageStore(db_pool, table=config.MESSAGES_TABLE)
            if db_pool
            else InMemoryMessageStore()
        )
    if transport is None:
        transport = RedisTransport(redis_client) if redis_client else InMemoryTransport()

    completion_client = completion_client or CompletionClient(config)
    broadcaster = Broadcaster(transport)
    queue = ResponseJobQueue(
        completion_client=completion_client,
        cache=cache,
        message_store=message_store,
        broadcaster=broadcaster,
        config=config,
    )

    # Connections nobody uses are not opened
    uses_redis = isinstance(cache, RedisResponseCache) or isinstance(transport, RedisTransport)
    uses_db = isinstance(message_store, PostgresMessageStore)

    return AssistantServices(
        config=config,
        completion_client=completion_client,
        cache=cache,
        message_store=message_store,
        transport=transport,
        broadcaster=broadcaster,
        queue=queue,
        redis=redis_client if uses_redis else None,
        db_pool=db_pool if uses_db else None,
    )
