"""
Assistant API response models.
Used by routes for output formatting.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from assistant_core.models.domain.conversation_domain import Decision
from assistant_core.models.domain.job_domain import JobView


class ContextResponse(BaseModel):
    topics: list[str] = Field(..., description="Subjects detected in the recent window")
    has_recent_assistant_turn: bool
    momentum: float = Field(..., ge=0, le=1)
    participation_level: float = Field(..., ge=0, le=1)
    dominant_tone: str


class DecisionResponse(BaseModel):
    """Response model for an assistant decision."""

    should_respond: bool = Field(..., description="Whether the assistant should reply")
    reason: str = Field(..., description="Human-readable reason for the decision")
    confidence: float = Field(..., ge=0, le=1)
    response_type: str
    behavior_mode: str
    question_type: str | None = Field(None, description="Detected question type, if any")
    context: ContextResponse

    @classmethod
    def from_decision(cls, decision: Decision) -> "DecisionResponse":
        data = decision.to_dict()
        return cls(
            should_respond=data["should_respond"],
            reason=data["reason"],
            confidence=data["confidence"],
            response_type=data["response_type"],
            behavior_mode=data["behavior_mode"],
            question_type=decision.signals.question.question_type if decision.signals else None,
            context=ContextResponse(**data["context"]),
        )


class SubmitResponse(BaseModel):
    """Response for a posted message: the decision and the queued job, if any."""

    decision: DecisionResponse
    job_id: str | None = Field(None, description="Queued job ID when the assistant replies")
    priority: str | None = Field(None, description="Priority bucket of the queued job")
    priority_score: float | None = Field(None, ge=0, le=1)


class JobResultResponse(BaseModel):
    text: str
    tokens_used: int
    model_id: str
    cached: bool
    message_id: str | None = None


class JobStatusResponse(BaseModel):
    """Response model for job status polling."""

    id: str
    status: str
    priority: str
    attempts: int
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    processing_time_ms: float | None = None
    error: str | None = Field(None, description="User-facing error message")
    result: JobResultResponse | None = None

    @classmethod
    def from_view(cls, view: JobView) -> "JobStatusResponse":
        return cls(
            id=view.id,
            status=view.status.value,
            priority=view.priority.value,
            attempts=view.attempts,
            created_at=view.created_at,
            started_at=view.started_at,
            completed_at=view.completed_at,
            failed_at=view.failed_at,
            processing_time_ms=view.processing_time_ms,
            error=view.error,
            result=JobResultResponse(**view.result.to_dict()) if view.result else None,
        )


class QueueStatsResponse(BaseModel):
    stats: dict[str, Any]
