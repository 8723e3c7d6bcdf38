"""Response priority scoring."""

from assistant_core.models.domain.conversation_domain import (
    ConversationContext,
    Decision,
    Message,
    PriorityScore,
)
from assistant_core.models.domain.job_domain import JobPriority
from assistant_core.services.decision.detectors import TermMatcher, extract_signals, normalize

URGENCY_TERMS = TermMatcher(
    (
        "urgent", "urgently", "asap", "emergency", "deadline", "due today",
        "due tomorrow", "exam tomorrow", "right now", "immediately", "quickly",
        "stuck", "help",
    )
)

MENTION_WEIGHT = 0.8
ACADEMIC_WEIGHT = 0.6
QUESTION_WEIGHT = 0.5
MAX_URGENCY_WEIGHT = 0.3
LOW_PARTICIPATION_WEIGHT = 0.2
TECHNICAL_DEPTH_WEIGHT = 0.2

LOW_PARTICIPATION_THRESHOLD = 0.5
LONG_MESSAGE_LENGTH = 100
RECENT_TURN_FACTOR = 0.3
RECENT_TURN_CAP = 0.5


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def urgency_score(text: str) -> float:
    return min(1.0, 0.3 * URGENCY_TERMS.count(normalize(text)))


def calculate_priority(
    message: Message,
    decision: Decision,
    context: ConversationContext | None = None,
) -> PriorityScore:
    """
    Score how urgently the assistant should answer, in [0, 1].

    Factors are additive; a recent assistant turn dampens the raw total before
    the final clamp so the assistant never dominates a conversation.
    """
    context = context or decision.context
    signals = decision.signals or extract_signals(message.text)
    urgency = urgency_score(message.text)

    factors: dict[str, bool | float] = {
        "explicit_mention": signals.explicit_mention,
        "academic_content": signals.is_academic,
        "question": signals.is_question,
        "urgency": urgency,
        "low_participation": context.participation_level < LOW_PARTICIPATION_THRESHOLD,
        "technical_depth": signals.length > LONG_MESSAGE_LENGTH and signals.is_technical,
        "recent_assistant_turn": context.has_recent_assistant_turn,
    }

    score = 0.0
    if factors["explicit_mention"]:
        score += MENTION_WEIGHT
    if factors["academic_content"]:
        score += ACADEMIC_WEIGHT
    if factors["question"]:
        score += QUESTION_WEIGHT
    score += min(urgency, MAX_URGENCY_WEIGHT)
    if factors["low_participation"]:
        score += LOW_PARTICIPATION_WEIGHT
    if factors["technical_depth"]:
        score += TECHNICAL_DEPTH_WEIGHT

    if context.has_recent_assistant_turn:
        score = min(score * RECENT_TURN_FACTOR, RECENT_TURN_CAP)

    return PriorityScore(priority=_clamp(score), factors=factors)


def bucket_priority(
    score: float,
    high_threshold: float = 0.75,
    normal_threshold: float = 0.4,
) -> JobPriority:
    if score >= high_threshold:
        return JobPriority.HIGH
    if score >= normal_threshold:
        return JobPriority.NORMAL
    return JobPriority.LOW
