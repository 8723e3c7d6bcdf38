"""
Assistant API Routes
HTTP endpoints for assistant decisions, reply jobs and queue statistics.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from assistant_core.container import AssistantServices
from assistant_core.infrastructure.observability.logging import get_logger
from assistant_core.models.api.assistant_request import DecideRequest
from assistant_core.models.api.assistant_response import (
    DecisionResponse,
    JobStatusResponse,
    QueueStatsResponse,
    SubmitResponse,
)
from assistant_core.models.domain.job_domain import JobPayload
from assistant_core.services.decision.decision_engine import decide
from assistant_core.services.decision.priority_calculator import (
    bucket_priority,
    calculate_priority,
)
from assistant_core.services.errors import InvalidInputError, QueueClosedError, user_message_for

logger = get_logger(__name__)

router = APIRouter(prefix="/assistant", tags=["assistant"])


def get_services(request: Request) -> AssistantServices:
    return request.app.state.services


def _decide(body: DecideRequest, services: AssistantServices):
    message = body.message.to_domain()
    thread = body.thread.to_domain()
    try:
        decision = decide(
            message, thread, body.recent_domain_messages(), **services.decision_options()
        )
    except InvalidInputError as e:
        logger.warning("Rejected decision request", thread_id=body.thread.id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=user_message_for(e)
        ) from e
    return message, thread, decision


@router.post("/decide", response_model=DecisionResponse)
async def decide_on_message(body: DecideRequest, services: AssistantServices = Depends(get_services)):
    """Decide whether the assistant should reply, without queueing anything."""
    _, _, decision = _decide(body, services)
    return DecisionResponse.from_decision(decision)


@router.post("/messages", response_model=SubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_message(body: DecideRequest, services: AssistantServices = Depends(get_services)):
    """Decide on a posted message and queue an assistant reply when warranted."""
    message, thread, decision = _decide(body, services)
    response = SubmitResponse(decision=DecisionResponse.from_decision(decision))

    if not decision.should_respond:
        return response

    score = calculate_priority(message, decision)
    priority = bucket_priority(
        score.priority,
        high_threshold=services.config.PRIORITY_HIGH_THRESHOLD,
        normal_threshold=services.config.PRIORITY_NORMAL_THRESHOLD,
    )

    history = body.recent_domain_messages()
    if not history or history[-1] != message:
        history.append(message)

    payload = JobPayload(
        conversation_id=thread.id,
        decision=decision,
        recent_messages=tuple(history[-services.config.CONTEXT_WINDOW_SIZE :]),
        participant_count=thread.participant_count,
        topic=thread.topic,
        learner_level=thread.learner_level,
        title=thread.title,
        description=thread.description,
    )

    try:
        job_id = services.queue.submit(payload, priority)
    except QueueClosedError as e:
        logger.warning("Reply job rejected, queue closed", thread_id=thread.id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assistant is shutting down. Please try again shortly.",
        ) from e

    logger.info(
        "Assistant reply queued",
        thread_id=thread.id,
        job_id=job_id,
        priority=priority.value,
        priority_score=round(score.priority, 3),
    )

    response.job_id = job_id
    response.priority = priority.value
    response.priority_score = score.priority
    return response


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(job_id: str, services: AssistantServices = Depends(get_services)):
    view = services.queue.get_status(job_id)
    if view is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return JobStatusResponse.from_view(view)


@router.get("/stats", response_model=QueueStatsResponse)
async def get_queue_stats(services: AssistantServices = Depends(get_services)):
    return QueueStatsResponse(stats=services.queue.stats())
