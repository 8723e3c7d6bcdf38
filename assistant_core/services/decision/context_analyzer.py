"""
Conversation context analysis.

Summarises the recent message window into a ConversationContext. Pure and
deterministic: the momentum reference time is either passed in or taken from
the newest message, never from the wall clock.
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta

from assistant_core.models.domain.conversation_domain import (
    ConversationContext,
    Message,
    Tone,
)
from assistant_core.services.decision.detectors import (
    detect_academic_intent,
    detect_explicit_mention,
    detect_question,
    detect_subjects,
)

DEFAULT_ASSISTANT_IDS = frozenset({"ai-assistant"})
DEFAULT_WINDOW_SIZE = 10
RECENT_TURN_WINDOW = 5
DEFAULT_MOMENTUM_WINDOW = timedelta(minutes=5)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are treated as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_assistant_turn(message: Message, assistant_ids: Iterable[str] = DEFAULT_ASSISTANT_IDS) -> bool:
    return message.sender_id in frozenset(assistant_ids)


def calculate_momentum(
    messages: Sequence[Message],
    now: datetime | None = None,
    window: timedelta = DEFAULT_MOMENTUM_WINDOW,
) -> float:
    """Fraction of messages sent within `window` of the reference time."""
    if not messages:
        return 0.0
    timestamps = [_as_utc(m.timestamp) for m in messages]
    reference = _as_utc(now) if now else max(timestamps)
    cutoff = reference - window
    recent = sum(1 for ts in timestamps if ts >= cutoff)
    return _clamp(recent / len(messages))


def calculate_participation(
    messages: Sequence[Message],
    assistant_ids: Iterable[str] = DEFAULT_ASSISTANT_IDS,
) -> float:
    """Blend of how many humans speak and how evenly they contribute."""
    assistant_ids = frozenset(assistant_ids)
    human = [m for m in messages if not is_assistant_turn(m, assistant_ids)]
    if not human:
        return 0.0
    distinct = len({m.sender_id for m in human})
    sender_score = min(distinct / 3, 1.0)
    volume_score = min(len(human) / distinct / 5, 1.0)
    return _clamp(0.6 * sender_score + 0.4 * volume_score)


def extract_topics(messages: Sequence[Message]) -> frozenset[str]:
    topics: set[str] = set()
    for message in messages:
        topics.update(detect_subjects(message.text))
    return frozenset(topics)


def determine_tone(messages: Sequence[Message], momentum: float) -> Tone:
    if not messages:
        return Tone.NEUTRAL

    total = len(messages)
    academic = sum(1 for m in messages if detect_academic_intent(m.text).is_academic)
    questions = sum(1 for m in messages if detect_question(m.text).is_question)

    if academic / total > 0.5:
        return Tone.ACADEMIC
    if questions / total > 0.3:
        return Tone.INQUISITIVE
    if momentum > 0.7:
        return Tone.ACTIVE
    return Tone.NEUTRAL


def analyze_context(
    messages: Sequence[Message] | None,
    *,
    now: datetime | None = None,
    assistant_ids: Iterable[str] = DEFAULT_ASSISTANT_IDS,
    window_size: int = DEFAULT_WINDOW_SIZE,
    momentum_window: timedelta = DEFAULT_MOMENTUM_WINDOW,
) -> ConversationContext:
    """
    Summarise the last `window_size` messages of a conversation.

    Args:
        messages: Conversation history, oldest first
        now: Reference time for momentum; defaults to the newest timestamp
        assistant_ids: Sender ids that belong to the assistant
        window_size: Number of trailing messages considered
        momentum_window: How far back a message still counts as recent

    Returns:
        ConversationContext with every score clamped to [0, 1]
    """
    if not messages:
        return ConversationContext()

    assistant_ids = frozenset(assistant_ids)
    window = list(messages)[-window_size:]

    has_recent_assistant_turn = any(
        is_assistant_turn(m, assistant_ids) or detect_explicit_mention(m.text)
        for m in window[-RECENT_TURN_WINDOW:]
    )
    momentum = calculate_momentum(window, now=now, window=momentum_window)

    return ConversationContext(
        topics=extract_topics(window),
        has_recent_assistant_turn=has_recent_assistant_turn,
        momentum=momentum,
        participation_level=calculate_participation(window, assistant_ids),
        dominant_tone=determine_tone(window, momentum),
    )
