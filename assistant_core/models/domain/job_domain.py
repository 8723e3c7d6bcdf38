"""
Domain models for asynchronous assistant response jobs.

`Job` is mutable and owned by the response queue while it is alive; callers
only ever see the `JobView` snapshot returned by `get_status`.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from assistant_core.models.domain.conversation_domain import Decision, Message


class JobPriority(str, Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Lower rank is dispatched first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {JobPriority.HIGH: 0, JobPriority.NORMAL: 1, JobPriority.LOW: 2}


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass(frozen=True, slots=True)
class JobPayload:
    conversation_id: str
    decision: Decision
    recent_messages: tuple[Message, ...]
    participant_count: int = 1
    topic: str = "general"
    learner_level: str = "intermediate"
    title: str = ""
    description: str = ""


@dataclass(frozen=True, slots=True)
class JobResult:
    text: str
    tokens_used: int
    model_id: str
    cached: bool = False
    message_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "tokens_used": self.tokens_used,
            "model_id": self.model_id,
            "cached": self.cached,
            "message_id": self.message_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobResult":
        return cls(
            text=data["text"],
            tokens_used=int(data.get("tokens_used", 0)),
            model_id=data.get("model_id", ""),
            cached=bool(data.get("cached", False)),
            message_id=data.get("message_id"),
        )


@dataclass(slots=True)
class Job:
    """Represents one pending assistant contribution."""

    id: str
    priority: JobPriority
    payload: JobPayload
    max_attempts: int
    sequence: int
    created_at: datetime
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    result: JobResult | None = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    processing_time_ms: float | None = None
    # Monotonic deadlines owned by the scheduler
    ready_at: float = 0.0
    retire_at: float | None = None


@dataclass(frozen=True, slots=True)
class JobView:
    id: str
    status: JobStatus
    priority: JobPriority
    attempts: int
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    failed_at: datetime | None
    processing_time_ms: float | None
    error: str | None
    result: JobResult | None

    @classmethod
    def from_job(cls, job: Job) -> "JobView":
        return cls(
            id=job.id,
            status=job.status,
            priority=job.priority,
            attempts=job.attempts,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            failed_at=job.failed_at,
            processing_time_ms=job.processing_time_ms,
            error=job.error,
            result=job.result,
        )


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: str
    value: JobResult
    created_at: float
    expires_at: float | None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now > self.expires_at
