import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from assistant_core.config import Settings
from assistant_core.container import build_services
from assistant_core.main import create_app
from assistant_core.models.domain.conversation_domain import Message, Thread
from assistant_core.models.domain.job_domain import JobPayload
from assistant_core.services.completion_client import CompletionClient, CompletionResult
from assistant_core.services.decision.decision_engine import decide

BASE_TIME = datetime(2025, 3, 1, 15, 0, tzinfo=UTC)


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.sets: dict[str, set[str]] = {}
        self.published: list[tuple[str, str]] = []
        self.subscribers: dict[str, int] = {}

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return self.subscribers.get(channel, 0)

    async def smembers(self, key: str) -> set[str]:
        return set(self.sets.get(key, set()))

    async def sadd(self, key: str, *members: str) -> int:
        before = len(self.sets.setdefault(key, set()))
        self.sets[key].update(members)
        return len(self.sets[key]) - before

    async def srem(self, key: str, *members: str) -> int:
        before = len(self.sets.get(key, set()))
        self.sets.get(key, set()).difference_update(members)
        return before - len(self.sets.get(key, set()))

    async def ping(self) -> bool:
        return True


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def make_message():
    def _make(text: str, sender_id: str = "user-1", seconds_ago: float = 0) -> Message:
        return Message(
            text=text,
            sender_id=sender_id,
            timestamp=BASE_TIME - timedelta(seconds=seconds_ago),
        )

    return _make


@pytest.fixture
def make_thread():
    def _make(participants: int = 1, **kwargs) -> Thread:
        return Thread(
            id=kwargs.pop("id", "thread-1"),
            participants=tuple(f"user-{i}" for i in range(1, participants + 1)),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_payload(make_message, make_thread):
    def _make(
        text: str = "What is the chain rule?",
        conversation_id: str = "thread-1",
        participants: int = 1,
        topic: str = "mathematics",
    ) -> JobPayload:
        message = make_message(text)
        thread = make_thread(participants, id=conversation_id, category=topic)
        return JobPayload(
            conversation_id=conversation_id,
            decision=decide(message, thread, [message]),
            recent_messages=(message,),
            participant_count=thread.participant_count,
            topic=thread.topic,
            learner_level=thread.learner_level,
        )

    return _make


@pytest.fixture
def fast_settings():
    """Queue timings shrunk so scheduler tests finish in milliseconds."""
    return Settings(
        QUEUE_TICK_INTERVAL_SECONDS=0.005,
        QUEUE_RETRY_BASE_SECONDS=0.01,
        QUEUE_RETRY_MAX_SECONDS=0.04,
        QUEUE_JOB_TIMEOUT_SECONDS=1.0,
        QUEUE_MAX_ATTEMPTS=3,
        QUEUE_MAX_CONCURRENT_JOBS=3,
        REDIS_URL=None,
        DATABASE_URL=None,
        COMPLETION_API_KEY=None,
    )


@pytest.fixture
def completion_stub():
    client = AsyncMock(spec=CompletionClient)
    client.generate.return_value = CompletionResult(
        text="The chain rule differentiates composite functions.",
        tokens_used=42,
        model_id="llama3-8b-8192",
        finish_reason="stop",
    )
    client.health_check.return_value = {"healthy": True, "service": "completion_client"}
    return client


@pytest.fixture
def services(fast_settings, completion_stub):
    return build_services(fast_settings, completion_client=completion_stub)


@pytest.fixture
def api_client(services):
    """TestClient with the app lifespan running (queue scheduler started)."""
    with TestClient(create_app(services)) as client:
        yield client


@pytest.fixture
def wait_for_terminal():
    async def _wait(queue, job_id: str, timeout: float = 2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            view = queue.get_status(job_id)
            if view is not None and view.status.is_terminal:
                return view
            await asyncio.sleep(0.005)
        raise AssertionError(f"job {job_id} did not finish within {timeout}s")

    return _wait
