"""
Realtime transport collaborator: publish to a conversation channel, resolve
its members, or send to one subscriber directly.
"""

import json
import threading
from collections import defaultdict
from typing import Any, Protocol

from assistant_core.infrastructure.observability.logging import get_logger
from assistant_core.services.redis_client import RedisClient

logger = get_logger(__name__)

CHANNEL_PREFIX = "assistant:channel"
MEMBERS_PREFIX = "assistant:members"
SUBSCRIBER_PREFIX = "assistant:subscriber"


class RealtimeTransport(Protocol):
    async def publish(self, channel_id: str, event: str, payload: dict[str, Any]) -> int: ...

    async def members_of(self, channel_id: str) -> set[str]: ...

    async def send(self, subscriber_id: str, event: str, payload: dict[str, Any]) -> bool: ...


class InMemoryTransport:
    """
    Process-local transport.

    `join` registers a subscriber for member lookup; unless `listening` is
    False it is also counted as a receiver by `publish`.
    """

    def __init__(self):
        self._members: dict[str, set[str]] = defaultdict(set)
        self._listening: dict[str, set[str]] = defaultdict(set)
        self.published: list[tuple[str, str, dict[str, Any]]] = []
        self.sent: list[tuple[str, str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def join(self, channel_id: str, subscriber_id: str, listening: bool = True) -> None:
        with self._lock:
            self._members[channel_id].add(subscriber_id)
            if listening:
                self._listening[channel_id].add(subscriber_id)

    def leave(self, channel_id: str, subscriber_id: str) -> None:
        with self._lock:
            self._members[channel_id].discard(subscriber_id)
            self._listening[channel_id].discard(subscriber_id)

    async def publish(self, channel_id: str, event: str, payload: dict[str, Any]) -> int:
        with self._lock:
            self.published.append((channel_id, event, payload))
            return len(self._listening.get(channel_id, ()))

    async def members_of(self, channel_id: str) -> set[str]:
        with self._lock:
            return set(self._members.get(channel_id, ()))

    async def send(self, subscriber_id: str, event: str, payload: dict[str, Any]) -> bool:
        with self._lock:
            self.sent.append((subscriber_id, event, payload))
        return True


class RedisTransport:
    """Redis pub/sub transport; channel membership lives in a Redis set."""

    def __init__(self, redis_client: RedisClient):
        self.redis = redis_client

    @staticmethod
    def _encode(event: str, payload: dict[str, Any]) -> str:
        return json.dumps({"event": event, "payload": payload}, default=str)

    async def join(self, channel_id: str, subscriber_id: str) -> None:
        await self.redis.sadd(f"{MEMBERS_PREFIX}:{channel_id}", subscriber_id)

    async def leave(self, channel_id: str, subscriber_id: str) -> None:
        await self.redis.srem(f"{MEMBERS_PREFIX}:{channel_id}", subscriber_id)

    async def publish(self, channel_id: str, event: str, payload: dict[str, Any]) -> int:
        return await self.redis.publish(f"{CHANNEL_PREFIX}:{channel_id}", self._encode(event, payload))

    async def members_of(self, channel_id: str) -> set[str]:
        return await self.redis.smembers(f"{MEMBERS_PREFIX}:{channel_id}")

    async def send(self, subscriber_id: str, event: str, payload: dict[str, Any]) -> bool:
        receivers = await self.redis.publish(
            f"{SUBSCRIBER_PREFIX}:{subscriber_id}", self._encode(event, payload)
        )
        return receivers > 0
