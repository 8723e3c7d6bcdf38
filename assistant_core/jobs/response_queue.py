"""
Asynchronous response job queue.

Accepts assistant reply jobs without blocking the caller and works through
them on a dedicated scheduler task: highest priority first, oldest first
within a priority, never more than the configured number at once. Failed
attempts are retried with capped exponential backoff; finished jobs are
kept around briefly so callers can poll their status.
"""

import asyncio
import heapq
import itertools
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from assistant_core.config import Settings, settings as default_settings
from assistant_core.infrastructure.observability.logging import get_logger, log_job_transition
from assistant_core.models.domain.job_domain import (
    Job,
    JobPayload,
    JobPriority,
    JobResult,
    JobStatus,
    JobView,
)
from assistant_core.services.broadcaster import Broadcaster
from assistant_core.services.completion_client import CompletionClient
from assistant_core.services.decision.prompt_builder import build_completion_request
from assistant_core.services.errors import (
    InvalidInputError,
    NonRetryableUpstreamError,
    QueueClosedError,
    TransientUpstreamError,
    user_message_for,
)
from assistant_core.services.message_store import MessageStore
from assistant_core.services.response_cache import ResponseCache, cache_key, fingerprint

logger = get_logger(__name__)

ASSISTANT_ROLE = "assistant"


def retry_delay(attempts: int, base_delay: float, max_delay: float) -> float:
    """Backoff before the next attempt, after `attempts` failed ones."""
    return min(base_delay * (2 ** max(attempts - 1, 0)), max_delay)


class QueueMetrics:
    """Lifetime counters for one queue instance."""

    def __init__(self):
        self.submitted = 0
        self.completed = 0
        self.failed = 0
        self.retried = 0
        self.cache_hits = 0
        self.timeouts = 0
        self.total_processing_ms = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "submitted": self.submitted,
            "completed": self.completed,
            "failed": self.failed,
            "retried": self.retried,
            "cache_hits": self.cache_hits,
            "timeouts": self.timeouts,
            "average_processing_time_ms": round(
                self.total_processing_ms / self.completed if self.completed else 0.0, 2
            ),
        }


class ResponseJobQueue:
    """
    Priority job queue with bounded concurrency.

    `submit` and `get_status` are safe to call from any thread; the job table
    and both heaps are guarded by one lock. Everything else runs on the
    event loop that called `start`.
    """

    def __init__(
        self,
        completion_client: CompletionClient,
        cache: ResponseCache,
        message_store: MessageStore,
        broadcaster: Broadcaster,
        config: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or default_settings
        self.completion_client = completion_client
        self.cache = cache
        self.message_store = message_store
        self.broadcaster = broadcaster

        self.max_concurrent = self.config.QUEUE_MAX_CONCURRENT_JOBS
        self.tick_interval = self.config.QUEUE_TICK_INTERVAL_SECONDS
        self.max_attempts = self.config.QUEUE_MAX_ATTEMPTS
        self.retry_base = self.config.QUEUE_RETRY_BASE_SECONDS
        self.retry_max = self.config.QUEUE_RETRY_MAX_SECONDS
        self.job_timeout = self.config.QUEUE_JOB_TIMEOUT_SECONDS
        self.delivery_timeout = self.config.QUEUE_DELIVERY_TIMEOUT_SECONDS
        self.completed_retention = self.config.QUEUE_COMPLETED_RETENTION_SECONDS
        self.failed_retention = self.config.QUEUE_FAILED_RETENTION_SECONDS
        self.cache_ttl = self.config.CACHE_TTL_SECONDS
        self.sweep_interval = self.config.CACHE_SWEEP_INTERVAL_SECONDS
        self.assistant_ids = frozenset(self.config.ASSISTANT_SENDER_IDS)

        self._clock = clock
        self._lock = threading.Lock()
        self._jobs: dict[str, Job] = {}
        # (priority rank, sequence, job id)
        self._ready: list[tuple[int, int, str]] = []
        # (ready_at, sequence, job id)
        self._delayed: list[tuple[float, int, str]] = []
        self._sequence = itertools.count()
        self._in_flight = 0
        self._closed = False

        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._stop: asyncio.Event | None = None
        self._scheduler_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._last_sweep = clock()
        self.metrics = QueueMetrics()

    # =================================================================
    # PUBLIC API
    # =================================================================

    @property
    def is_running(self) -> bool:
        return self._scheduler_task is not None and not self._scheduler_task.done()

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    def submit(self, payload: JobPayload, priority: JobPriority = JobPriority.NORMAL) -> str:
        """
        Queue a reply job and return its id immediately.

        Raises:
            QueueClosedError: shutdown has started
        """
        with self._lock:
            if self._closed:
                raise QueueClosedError()

            sequence = next(self._sequence)
            job = Job(
                id=str(uuid.uuid4()),
                priority=priority,
                payload=payload,
                max_attempts=self.max_attempts,
                sequence=sequence,
                created_at=datetime.now(UTC),
            )
            self._jobs[job.id] = job
            heapq.heappush(self._ready, (priority.rank, sequence, job.id))
            self.metrics.submitted += 1

        log_job_transition(
            job.id,
            JobStatus.PENDING.value,
            priority=priority.value,
            conversation_id=payload.conversation_id,
        )
        return job.id

    def get_status(self, job_id: str) -> JobView | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return JobView.from_job(job) if job else None

    def start(self) -> None:
        """Launch the scheduler task on the running event loop."""
        if self.is_running:
            return
        if self._closed:
            raise QueueClosedError()

        self._stop = asyncio.Event()
        self._scheduler_task = asyncio.create_task(self._run_scheduler())
        logger.info(
            "Response queue started",
            max_concurrent=self.max_concurrent,
            tick_interval=self.tick_interval,
            max_attempts=self.max_attempts,
        )

    async def shutdown(self, drain_timeout: float | None = None) -> None:
        """Stop accepting jobs, stop the scheduler and wait for in-flight jobs."""
        with self._lock:
            self._closed = True

        if self._stop is not None:
            self._stop.set()
        if self._scheduler_task is not None:
            await self._scheduler_task

        deadline = None if drain_timeout is None else self._clock() + drain_timeout
        while self.in_flight > 0:
            if deadline is not None and self._clock() >= deadline:
                logger.warning("Response queue drain timed out", in_flight=self.in_flight)
                break
            await asyncio.sleep(self.tick_interval)

        stats = self.stats()
        logger.info(
            "Response queue shut down",
            pending=stats["pending"],
            completed=stats["completed"],
            failed=stats["failed"],
        )

    def stats(self) -> dict[str, Any]:
        with self._lock:
            by_status = {status: 0 for status in JobStatus}
            for job in self._jobs.values():
                by_status[job.status] += 1
            return {
                **self.metrics.to_dict(),
                "in_flight": self._in_flight,
                "max_concurrent": self.max_concurrent,
                "pending": by_status[JobStatus.PENDING],
                "processing": by_status[JobStatus.PROCESSING],
                "tracked_jobs": len(self._jobs),
                "cache": self.cache.stats(),
                "delivery": self.broadcaster.stats(),
            }

    # =================================================================
    # SCHEDULER
    # =================================================================

    async def _run_scheduler(self) -> None:
        while not self._stop.is_set():
            try:
                await self._tick()
            except Exception as e:
                logger.error("Response queue tick failed", error=str(e), error_type=type(e).__name__)

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.tick_interval)
            except TimeoutError:
                pass

    async def _tick(self) -> None:
        now = self._clock()
        self._purge_retired(now)
        self._promote_delayed(now)

        if now - self._last_sweep >= self.sweep_interval:
            self._last_sweep = now
            await self.cache.sweep()

        for job in self._claim_ready_jobs():
            task = asyncio.create_task(self._execute(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def _purge_retired(self, now: float) -> None:
        with self._lock:
            retired = [
                job_id
                for job_id, job in self._jobs.items()
                if job.retire_at is not None and now >= job.retire_at
            ]
            for job_id in retired:
                del self._jobs[job_id]

        if retired:
            logger.debug("Purged retired response jobs", count=len(retired))

    def _promote_delayed(self, now: float) -> None:
        with self._lock:
            while self._delayed and self._delayed[0][0] <= now:
                _, _, job_id = heapq.heappop(self._delayed)
                job = self._jobs.get(job_id)
                if job is not None and job.status == JobStatus.PENDING:
                    heapq.heappush(self._ready, (job.priority.rank, job.sequence, job.id))

    def _claim_ready_jobs(self) -> list[Job]:
        claimed = []
        started_at = datetime.now(UTC)
        with self._lock:
            while self._ready and self._in_flight < self.max_concurrent:
                _, _, job_id = heapq.heappop(self._ready)
                job = self._jobs.get(job_id)
                if job is None or job.status != JobStatus.PENDING:
                    continue
                job.status = JobStatus.PROCESSING
                job.attempts += 1
                job.started_at = started_at
                self._in_flight += 1
                claimed.append(job)

        for job in claimed:
            log_job_transition(job.id, JobStatus.PROCESSING.value, attempt=job.attempts)
        return claimed

    # =================================================================
    # EXECUTION
    # =================================================================

    async def _execute(self, job: Job) -> None:
        async with self._semaphore:
            start = self._clock()
            try:
                reply = await asyncio.wait_for(self._generate(job), timeout=self.job_timeout)
                result = await self._persist(job, reply)
            except TimeoutError:
                self.metrics.timeouts += 1
                self._record_failure(
                    job,
                    TransientUpstreamError(f"Response job timed out after {self.job_timeout}s"),
                    start,
                )
            except Exception as e:
                self._record_failure(job, e, start)
            else:
                # The reply is persisted; nothing past this point fails the job
                await self._deliver(job, result)
                self._record_success(job, result, start)
            finally:
                with self._lock:
                    self._in_flight -= 1

    @staticmethod
    def _cache_key(payload: JobPayload) -> str:
        return cache_key(
            payload.conversation_id,
            fingerprint(payload.participant_count, payload.topic, payload.learner_level),
        )

    async def _generate(self, job: Job) -> JobResult:
        """Reply text from the cache, or from the completion API on a miss."""
        payload = job.payload
        cached = await self.cache.get(self._cache_key(payload))
        if cached is not None:
            self.metrics.cache_hits += 1
            logger.info(
                "Using cached assistant reply",
                job_id=job.id,
                conversation_id=payload.conversation_id,
            )
            return replace(cached, cached=True, message_id=None)

        request = build_completion_request(payload, assistant_ids=self.assistant_ids)
        completion = await self.completion_client.generate(request)
        return JobResult(
            text=completion.text,
            tokens_used=completion.tokens_used,
            model_id=completion.model_id,
            cached=False,
        )

    async def _persist(self, job: Job, reply: JobResult) -> JobResult:
        payload = job.payload
        metadata = self._reply_metadata(payload, reply.model_id, reply.tokens_used)
        if reply.cached:
            metadata["cached"] = True
        message_id = await self.message_store.save_message(
            payload.conversation_id, reply.text, ASSISTANT_ROLE, metadata=metadata
        )
        result = replace(reply, message_id=message_id)

        if not reply.cached:
            try:
                await self.cache.set(self._cache_key(payload), result, self.cache_ttl)
            except Exception as e:
                logger.warning("Could not cache assistant reply", job_id=job.id, error=str(e))
        return result

    @staticmethod
    def _reply_metadata(payload: JobPayload, model_id: str, tokens_used: int) -> dict[str, Any]:
        decision = payload.decision
        return {
            "model": model_id,
            "tokens": tokens_used,
            "decision_reason": decision.reason,
            "behavior_mode": decision.behavior_mode.value,
            "response_type": decision.response_type.value,
        }

    async def _deliver(self, job: Job, result: JobResult) -> None:
        payload = job.payload
        try:
            report = await asyncio.wait_for(
                self.broadcaster.deliver(
                    payload.conversation_id,
                    {
                        "job_id": job.id,
                        "conversation_id": payload.conversation_id,
                        "message_id": result.message_id,
                        "text": result.text,
                        "cached": result.cached,
                        "model_id": result.model_id,
                        "behavior_mode": payload.decision.behavior_mode.value,
                        "response_type": payload.decision.response_type.value,
                    },
                ),
                timeout=self.delivery_timeout,
            )
        except TimeoutError:
            logger.error(
                "Assistant reply delivery timed out",
                job_id=job.id,
                timeout=self.delivery_timeout,
            )
            return
        except Exception as e:
            logger.error("Assistant reply delivery failed", job_id=job.id, error=str(e))
            return

        if not report.delivered:
            logger.warning("Assistant reply saved but not delivered", job_id=job.id)

    def _record_success(self, job: Job, result: JobResult, start: float) -> None:
        elapsed_ms = (self._clock() - start) * 1000
        with self._lock:
            job.status = JobStatus.COMPLETED
            job.result = result
            job.error = None
            job.completed_at = datetime.now(UTC)
            job.processing_time_ms = elapsed_ms
            job.retire_at = self._clock() + self.completed_retention
            self.metrics.completed += 1
            self.metrics.total_processing_ms += elapsed_ms

        log_job_transition(
            job.id,
            JobStatus.COMPLETED.value,
            attempt=job.attempts,
            cached=result.cached,
            processing_time_ms=round(elapsed_ms, 2),
        )

    def _record_failure(self, job: Job, error: Exception, start: float) -> None:
        elapsed_ms = (self._clock() - start) * 1000
        retryable = not isinstance(error, (NonRetryableUpstreamError, InvalidInputError))

        with self._lock:
            job.error = user_message_for(error)
            job.processing_time_ms = elapsed_ms
            will_retry = retryable and job.attempts < job.max_attempts

            if will_retry:
                delay = retry_delay(job.attempts, self.retry_base, self.retry_max)
                job.status = JobStatus.PENDING
                job.ready_at = self._clock() + delay
                heapq.heappush(self._delayed, (job.ready_at, job.sequence, job.id))
                self.metrics.retried += 1
            else:
                job.status = JobStatus.FAILED
                job.failed_at = datetime.now(UTC)
                job.retire_at = self._clock() + self.failed_retention
                self.metrics.failed += 1

        if will_retry:
            log_job_transition(
                job.id,
                "retrying",
                attempt=job.attempts,
                retry_in_seconds=delay,
                error=str(error),
                error_type=type(error).__name__,
            )
        else:
            log_job_transition(
                job.id,
                JobStatus.FAILED.value,
                attempt=job.attempts,
                retryable=retryable,
                error=str(error),
                error_type=type(error).__name__,
            )
