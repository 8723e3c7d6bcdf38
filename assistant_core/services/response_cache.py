"""
TTL cache for generated assistant replies.

Keys are scoped per conversation and carry a coarse fingerprint of the
conversational context, so similar situations in the same conversation can
reuse a reply instead of calling the completion API again.
"""

import hashlib
import json
import threading
import time
from collections.abc import Callable
from typing import Any, Protocol

from assistant_core.infrastructure.observability.logging import get_logger
from assistant_core.models.domain.job_domain import CacheEntry, JobResult
from assistant_core.services.redis_client import RedisClient

logger = get_logger(__name__)

KEY_PREFIX = "assistant_response"
DEFAULT_TTL_SECONDS = 3600.0


def fingerprint(participant_count: int, topic: str, learner_level: str) -> str:
    """Stable digest of the context fields that shape a reply."""
    canonical = json.dumps(
        {
            "learner_level": learner_level,
            "participant_count": participant_count,
            "topic": topic,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def cache_key(conversation_id: str, context_fingerprint: str) -> str:
    return f"{KEY_PREFIX}:{conversation_id}:{context_fingerprint}"


class ResponseCache(Protocol):
    async def get(self, key: str) -> JobResult | None: ...

    async def set(self, key: str, value: JobResult, ttl: float | None = None) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def sweep(self) -> int: ...

    def stats(self) -> dict[str, Any]: ...


class MemoryResponseCache:
    """In-process cache with lazy expiry on read and a periodic sweep."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0, "evictions": 0}

    async def get(self, key: str) -> JobResult | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return None
            if entry.is_expired(now):
                del self._entries[key]
                self._stats["misses"] += 1
                self._stats["evictions"] += 1
                return None
            self._stats["hits"] += 1
            return entry.value

    async def set(self, key: str, value: JobResult, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + ttl if ttl > 0 else None,
        )
        with self._lock:
            self._entries[key] = entry
            self._stats["sets"] += 1

    async def delete(self, key: str) -> bool:
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self._stats["deletes"] += 1
            return removed

    async def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._stats["evictions"] += len(expired)

        if expired:
            logger.debug("Response cache swept", evicted=len(expired))
        return len(expired)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self._stats["hits"] + self._stats["misses"]
            return {
                "backend": "memory",
                "size": len(self._entries),
                **self._stats,
                "hit_rate": round(self._stats["hits"] / lookups, 3) if lookups else 0.0,
            }


class RedisResponseCache:
    """Redis-backed cache; expiry is delegated to SETEX."""

    def __init__(self, redis_client: RedisClient, default_ttl: float = DEFAULT_TTL_SECONDS):
        self.redis = redis_client
        self.default_ttl = default_ttl
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0}

    async def get(self, key: str) -> JobResult | None:
        raw = await self.redis.get(key)
        if raw is None:
            self._stats["misses"] += 1
            return None
        try:
            value = JobResult.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable cache entry", key=key[:60], error=str(e))
            await self.redis.delete(key)
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return value

    async def set(self, key: str, value: JobResult, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        stored = await self.redis.set_with_ttl(
            key, json.dumps(value.to_dict()), max(int(ttl), 1) if ttl > 0 else None
        )
        if stored:
            self._stats["sets"] += 1

    async def delete(self, key: str) -> bool:
        removed = await self.redis.delete(key)
        if removed:
            self._stats["deletes"] += 1
        return removed

    async def sweep(self) -> int:
        return 0

    def stats(self) -> dict[str, Any]:
        lookups = self._stats["hits"] + self._stats["misses"]
        return {
            "backend": "redis",
            **self._stats,
            "hit_rate": round(self._stats["hits"] / lookups, 3) if lookups else 0.0,
        }
