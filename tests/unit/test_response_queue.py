import asyncio

import pytest

from assistant_core.jobs.response_queue import ResponseJobQueue, retry_delay
from assistant_core.models.domain.job_domain import JobPriority, JobStatus
from assistant_core.services.broadcaster import Broadcaster
from assistant_core.services.completion_client import CompletionResult
from assistant_core.services.errors import (
    USER_MESSAGES,
    ErrorCategory,
    NonRetryableUpstreamError,
    QueueClosedError,
    TransientUpstreamError,
)
from assistant_core.services.message_store import InMemoryMessageStore
from assistant_core.services.realtime_transport import InMemoryTransport
from assistant_core.services.response_cache import MemoryResponseCache

REPLY = CompletionResult(text="Here is how it works.", tokens_used=30, model_id="llama3-8b-8192")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store():
    return InMemoryMessageStore()


@pytest.fixture
def transport():
    transport = InMemoryTransport()
    transport.join("thread-1", "user-1")
    return transport


@pytest.fixture
def make_queue(fast_settings, completion_stub, store, transport):
    def _make(clock=None, **overrides):
        config = fast_settings.model_copy(update=overrides)
        kwargs = {"clock": clock} if clock else {}
        return ResponseJobQueue(
            completion_client=completion_stub,
            cache=MemoryResponseCache(default_ttl=config.CACHE_TTL_SECONDS),
            message_store=store,
            broadcaster=Broadcaster(transport),
            config=config,
            **kwargs,
        )

    return _make


def test_retry_delay_grows_and_caps():
    delays = [retry_delay(attempt, 1.0, 10.0) for attempt in range(1, 7)]

    assert delays == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]
    assert all(a <= b for a, b in zip(delays, delays[1:]))


def test_submit_returns_immediately_as_pending(make_queue, make_payload):
    queue = make_queue()

    job_id = queue.submit(make_payload(), JobPriority.HIGH)

    view = queue.get_status(job_id)
    assert view.status == JobStatus.PENDING
    assert view.priority == JobPriority.HIGH
    assert view.attempts == 0
    assert queue.get_status("unknown") is None


@pytest.mark.asyncio
async def test_job_completes_saves_and_broadcasts(
    make_queue, make_payload, completion_stub, store, transport, wait_for_terminal
):
    queue = make_queue()
    queue.start()

    job_id = queue.submit(make_payload())
    view = await wait_for_terminal(queue, job_id)
    await queue.shutdown()

    assert view.status == JobStatus.COMPLETED
    assert view.attempts == 1
    assert view.error is None
    assert view.result.text == "The chain rule differentiates composite functions."
    assert view.result.cached is False

    saved = store.for_conversation("thread-1")
    assert len(saved) == 1
    assert saved[0]["id"] == view.result.message_id
    assert saved[0]["role"] == "assistant"
    assert saved[0]["metadata"]["behavior_mode"] == "personal_tutor"

    channel, event, payload = transport.published[0]
    assert (channel, event) == ("thread-1", "assistant_message")
    assert payload["job_id"] == job_id
    assert payload["message_id"] == view.result.message_id

    request = completion_stub.generate.await_args.args[0]
    assert request.messages[0]["role"] == "system"


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_limit(
    make_queue, make_payload, completion_stub, wait_for_terminal
):
    active = 0
    peak = 0

    async def slow_generate(request):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.03)
        active -= 1
        return REPLY

    completion_stub.generate.side_effect = slow_generate
    queue = make_queue()
    queue.start()

    job_ids = [queue.submit(make_payload(conversation_id=f"thread-{i}")) for i in range(8)]
    views = [await wait_for_terminal(queue, job_id) for job_id in job_ids]
    await queue.shutdown()

    assert all(view.status == JobStatus.COMPLETED for view in views)
    assert 1 <= peak <= 3
    assert queue.in_flight == 0


@pytest.mark.asyncio
async def test_higher_priority_dispatched_first(
    make_queue, make_payload, completion_stub, wait_for_terminal
):
    order = []

    async def record(request):
        order.append(request.metadata["conversation_id"])
        return REPLY

    completion_stub.generate.side_effect = record
    queue = make_queue(QUEUE_MAX_CONCURRENT_JOBS=1)

    submitted = [
        queue.submit(make_payload(conversation_id="low"), JobPriority.LOW),
        queue.submit(make_payload(conversation_id="normal-1"), JobPriority.NORMAL),
        queue.submit(make_payload(conversation_id="high"), JobPriority.HIGH),
        queue.submit(make_payload(conversation_id="normal-2"), JobPriority.NORMAL),
    ]
    queue.start()
    for job_id in submitted:
        await wait_for_terminal(queue, job_id)
    await queue.shutdown()

    assert order == ["high", "normal-1", "normal-2", "low"]


@pytest.mark.asyncio
async def test_transient_failure_is_retried(
    make_queue, make_payload, completion_stub, wait_for_terminal
):
    completion_stub.generate.side_effect = [TransientUpstreamError("boom", status_code=503), REPLY]
    queue = make_queue()
    queue.start()

    view = await wait_for_terminal(queue, queue.submit(make_payload()))
    await queue.shutdown()

    assert view.status == JobStatus.COMPLETED
    assert view.attempts == 2
    assert view.error is None
    assert queue.stats()["retried"] == 1


@pytest.mark.asyncio
async def test_job_fails_after_max_attempts(
    make_queue, make_payload, completion_stub, wait_for_terminal
):
    completion_stub.generate.side_effect = TransientUpstreamError("boom", status_code=500)
    queue = make_queue()
    queue.start()

    view = await wait_for_terminal(queue, queue.submit(make_payload()))
    await queue.shutdown()

    assert view.status == JobStatus.FAILED
    assert view.attempts == 3
    assert view.failed_at is not None
    assert view.error == USER_MESSAGES[ErrorCategory.TEMPORARILY_UNAVAILABLE]
    assert completion_stub.generate.await_count == 3
    assert queue.stats()["failed"] == 1


@pytest.mark.asyncio
async def test_non_retryable_failure_is_final(
    make_queue, make_payload, completion_stub, wait_for_terminal
):
    completion_stub.generate.side_effect = NonRetryableUpstreamError(
        "429 from upstream", category=ErrorCategory.RATE_LIMITED, status_code=429
    )
    queue = make_queue()
    queue.start()

    view = await wait_for_terminal(queue, queue.submit(make_payload()))
    await queue.shutdown()

    assert view.status == JobStatus.FAILED
    assert view.attempts == 1
    assert view.error == USER_MESSAGES[ErrorCategory.RATE_LIMITED]
    assert "429" not in view.error


@pytest.mark.asyncio
async def test_slow_job_times_out(make_queue, make_payload, completion_stub, wait_for_terminal):
    async def hang(request):
        await asyncio.sleep(5)
        return REPLY

    completion_stub.generate.side_effect = hang
    queue = make_queue(QUEUE_JOB_TIMEOUT_SECONDS=0.05, QUEUE_MAX_ATTEMPTS=1)
    queue.start()

    view = await wait_for_terminal(queue, queue.submit(make_payload()))
    await queue.shutdown()

    assert view.status == JobStatus.FAILED
    assert queue.stats()["timeouts"] == 1


@pytest.mark.asyncio
async def test_slow_broadcast_does_not_retry_saved_reply(
    make_queue, make_payload, completion_stub, store, wait_for_terminal
):
    delivered = []

    async def slow_deliver(conversation_id, message):
        await asyncio.sleep(0.15)
        delivered.append(message["message_id"])

    queue = make_queue(QUEUE_JOB_TIMEOUT_SECONDS=0.05)
    queue.broadcaster.deliver = slow_deliver
    queue.start()

    view = await wait_for_terminal(queue, queue.submit(make_payload()))
    await queue.shutdown()

    assert view.status == JobStatus.COMPLETED
    assert view.attempts == 1
    assert len(store.messages) == 1
    assert delivered == [view.result.message_id]
    assert completion_stub.generate.await_count == 1


@pytest.mark.asyncio
async def test_hung_broadcast_is_abandoned_after_delivery_timeout(
    make_queue, make_payload, store, wait_for_terminal
):
    async def hang(conversation_id, message):
        await asyncio.sleep(5)

    queue = make_queue(QUEUE_DELIVERY_TIMEOUT_SECONDS=0.05)
    queue.broadcaster.deliver = hang
    queue.start()

    view = await wait_for_terminal(queue, queue.submit(make_payload()))
    await queue.shutdown()

    assert view.status == JobStatus.COMPLETED
    assert view.error is None
    assert len(store.messages) == 1
    assert queue.stats()["timeouts"] == 0


@pytest.mark.asyncio
async def test_failed_save_is_retried_without_duplicates(
    make_queue, make_payload, store, wait_for_terminal
):
    save = store.save_message
    calls = 0

    async def flaky_save(*args, **kwargs):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise ConnectionError("database unavailable")
        return await save(*args, **kwargs)

    store.save_message = flaky_save
    queue = make_queue()
    queue.start()

    view = await wait_for_terminal(queue, queue.submit(make_payload()))
    await queue.shutdown()

    assert view.status == JobStatus.COMPLETED
    assert view.attempts == 2
    assert len(store.messages) == 1


@pytest.mark.asyncio
async def test_second_identical_job_uses_cache(
    make_queue, make_payload, completion_stub, store, wait_for_terminal
):
    queue = make_queue()
    queue.start()

    first = await wait_for_terminal(queue, queue.submit(make_payload()))
    second = await wait_for_terminal(queue, queue.submit(make_payload()))
    await queue.shutdown()

    assert first.result.cached is False
    assert second.result.cached is True
    assert second.result.text == first.result.text
    assert second.result.message_id != first.result.message_id
    assert completion_stub.generate.await_count == 1
    assert [m["metadata"].get("cached", False) for m in store.messages] == [False, True]
    assert queue.stats()["cache_hits"] == 1


@pytest.mark.asyncio
async def test_finished_jobs_are_purged_after_retention(
    make_queue, make_payload, wait_for_terminal
):
    clock = FakeClock()
    queue = make_queue(clock=clock)
    queue.start()

    job_id = queue.submit(make_payload())
    await wait_for_terminal(queue, job_id)

    clock.now += queue.completed_retention + 1
    for _ in range(100):
        if queue.get_status(job_id) is None:
            break
        await asyncio.sleep(0.005)
    await queue.shutdown()

    assert queue.get_status(job_id) is None
    assert queue.stats()["tracked_jobs"] == 0


@pytest.mark.asyncio
async def test_shutdown_drains_in_flight_and_rejects_new_jobs(
    make_queue, make_payload, completion_stub
):
    started = asyncio.Event()

    async def slow_generate(request):
        started.set()
        await asyncio.sleep(0.05)
        return REPLY

    completion_stub.generate.side_effect = slow_generate
    queue = make_queue()
    queue.start()

    job_id = queue.submit(make_payload())
    await asyncio.wait_for(started.wait(), timeout=1.0)
    await queue.shutdown()

    assert queue.get_status(job_id).status == JobStatus.COMPLETED
    assert queue.is_running is False
    with pytest.raises(QueueClosedError):
        queue.submit(make_payload())
    with pytest.raises(QueueClosedError):
        queue.start()


@pytest.mark.asyncio
async def test_stats_shape(make_queue, make_payload):
    queue = make_queue()
    queue.submit(make_payload())

    stats = queue.stats()

    assert stats["submitted"] == 1
    assert stats["pending"] == 1
    assert stats["in_flight"] == 0
    assert stats["max_concurrent"] == 3
    assert stats["cache"]["backend"] == "memory"
    assert stats["delivery"]["deliveries"] == 0
