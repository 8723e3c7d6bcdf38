"""
Decision engine: should the assistant contribute to this message, and how?

Detectors run once per message (`extract_signals`); the solo and group
policies are ordered rule tables evaluated first-match-wins over the same
signals. Solo conversations fail open (respond when in doubt), groups fail
closed (stay silent unless there is a clear reason to speak).
"""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from assistant_core.infrastructure.observability.logging import get_logger
from assistant_core.models.domain.conversation_domain import (
    BehaviorMode,
    ConversationContext,
    Decision,
    Message,
    MessageSignals,
    ResponseType,
    Thread,
)
from assistant_core.services.decision.context_analyzer import (
    DEFAULT_ASSISTANT_IDS,
    DEFAULT_MOMENTUM_WINDOW,
    DEFAULT_WINDOW_SIZE,
    analyze_context,
)
from assistant_core.services.decision.detectors import extract_signals
from assistant_core.services.errors import InvalidInputError

logger = get_logger(__name__)

LARGE_GROUP_SIZE = 4
MIN_ACADEMIC_QUESTION_LENGTH = 15
CONVERSATIONAL_LENGTH = 20


@dataclass(frozen=True, slots=True)
class RuleInput:
    signals: MessageSignals
    thread: Thread
    context: ConversationContext


@dataclass(frozen=True, slots=True)
class Rule:
    name: str
    when: Callable[[RuleInput], bool]
    should_respond: bool
    reason: str
    confidence: float | Callable[[RuleInput], float]
    response_type: ResponseType = ResponseType.NONE
    behavior_mode: BehaviorMode = BehaviorMode.STANDARD

    def confidence_for(self, data: RuleInput) -> float:
        if callable(self.confidence):
            return self.confidence(data)
        return self.confidence


def _always(data: RuleInput) -> bool:
    return True


def _has_learning_signal(data: RuleInput) -> bool:
    s = data.signals
    return s.is_academic or s.math_expression or s.code_pattern or s.educational_keywords


def _technical_question(data: RuleInput) -> bool:
    s = data.signals
    return (s.math_expression and s.is_question) or (
        s.code_pattern and (s.is_question or s.error_keyword)
    )


def _selective_expert(data: RuleInput) -> bool:
    s = data.signals
    return (
        data.thread.participant_count >= LARGE_GROUP_SIZE
        and s.is_academic
        and s.educational_keywords
        and s.is_question
    )


SOLO_RULES: tuple[Rule, ...] = (
    Rule(
        name="trivial",
        when=lambda d: d.signals.trivial,
        should_respond=False,
        reason="Message is too short or only a greeting",
        confidence=0.1,
    ),
    Rule(
        name="study_session",
        when=lambda d: d.thread.is_study_session,
        should_respond=True,
        reason="Study session thread, acting as a focused tutor",
        confidence=0.8,
        response_type=ResponseType.TUTORING,
        behavior_mode=BehaviorMode.FOCUSED_TUTOR,
    ),
    Rule(
        name="learning_signal",
        when=_has_learning_signal,
        should_respond=True,
        reason="Academic or technical content in a solo conversation",
        confidence=lambda d: 0.85 if d.signals.is_question else 0.75,
        response_type=ResponseType.EDUCATIONAL,
        behavior_mode=BehaviorMode.PERSONAL_TUTOR,
    ),
    Rule(
        name="question",
        when=lambda d: d.signals.is_question,
        should_respond=True,
        reason="Question asked in a solo conversation",
        confidence=0.6,
        response_type=ResponseType.HELPFUL,
        behavior_mode=BehaviorMode.SUPPORTIVE_ASSISTANT,
    ),
    Rule(
        name="conversational",
        when=lambda d: not d.signals.personal_casual,
        should_respond=True,
        reason="Solo conversation, keeping the user company",
        confidence=lambda d: 0.5 if d.signals.length > CONVERSATIONAL_LENGTH else 0.35,
        response_type=ResponseType.CONVERSATIONAL,
        behavior_mode=BehaviorMode.THOUGHTFUL_COMPANION,
    ),
    Rule(
        name="personal_casual",
        when=_always,
        should_respond=False,
        reason="Personal or casual message with nothing to add",
        confidence=0.2,
    ),
)

GROUP_RULES: tuple[Rule, ...] = (
    Rule(
        name="explicit_mention",
        when=lambda d: d.signals.explicit_mention,
        should_respond=True,
        reason="Explicit mention of the assistant",
        confidence=0.95,
        response_type=ResponseType.DIRECT_RESPONSE,
        behavior_mode=BehaviorMode.COLLABORATIVE_ASSISTANT,
    ),
    Rule(
        name="trivial",
        when=lambda d: d.signals.trivial,
        should_respond=False,
        reason="Message is too short or only a greeting",
        confidence=0.05,
    ),
    Rule(
        name="personal_casual",
        when=lambda d: d.signals.personal_casual,
        should_respond=False,
        reason="Casual conversation between participants",
        confidence=0.05,
    ),
    Rule(
        name="academic_question",
        when=lambda d: (
            d.signals.is_question
            and d.signals.is_academic
            and d.signals.length > MIN_ACADEMIC_QUESTION_LENGTH
        ),
        should_respond=True,
        reason="Academic question the group can explore together",
        confidence=0.85,
        response_type=ResponseType.EDUCATIONAL,
        behavior_mode=BehaviorMode.FACILITATING_TUTOR,
    ),
    Rule(
        name="technical_question",
        when=_technical_question,
        should_respond=True,
        reason="Technical question that benefits from expert help",
        confidence=0.8,
        response_type=ResponseType.TECHNICAL_ASSISTANCE,
        behavior_mode=BehaviorMode.EXPERT_CONSULTANT,
    ),
    Rule(
        name="selective_expert",
        when=_selective_expert,
        should_respond=True,
        reason="Clear educational question in a large group",
        confidence=0.75,
        response_type=ResponseType.EDUCATIONAL,
        behavior_mode=BehaviorMode.SELECTIVE_EXPERT,
    ),
    Rule(
        name="large_group",
        when=lambda d: d.thread.participant_count >= LARGE_GROUP_SIZE,
        should_respond=False,
        reason="Large group discussion, staying out of the way",
        confidence=0.1,
    ),
    Rule(
        name="small_group_academic",
        when=lambda d: d.signals.is_academic,
        should_respond=True,
        reason="Academic discussion in a small group",
        confidence=0.75,
        response_type=ResponseType.SUPPLEMENTARY,
        behavior_mode=BehaviorMode.COLLABORATIVE_TUTOR,
    ),
    Rule(
        name="default",
        when=_always,
        should_respond=False,
        reason="No clear reason to join the group conversation",
        confidence=0.1,
    ),
)


def evaluate_rules(rules: Sequence[Rule], data: RuleInput) -> tuple[Rule, float]:
    for rule in rules:
        if rule.when(data):
            return rule, rule.confidence_for(data)
    raise InvalidInputError("No decision rule matched")


def decide(
    message: Message | None,
    thread: Thread | None,
    recent_messages: Sequence[Message] | None = None,
    *,
    now: datetime | None = None,
    assistant_ids: Iterable[str] = DEFAULT_ASSISTANT_IDS,
    window_size: int = DEFAULT_WINDOW_SIZE,
    momentum_window: timedelta = DEFAULT_MOMENTUM_WINDOW,
) -> Decision:
    """
    Decide whether the assistant should reply to `message`.

    Identical inputs always produce an identical Decision.

    Raises:
        InvalidInputError: message or thread missing, or thread has no participants
    """
    if message is None:
        raise InvalidInputError("message is required")
    if thread is None:
        raise InvalidInputError("thread is required")
    if thread.participant_count < 1:
        raise InvalidInputError("thread must have at least one participant")

    # Context describes what preceded the message, not the message itself
    history = list(recent_messages or ())
    if history and history[-1] == message:
        history.pop()

    context = analyze_context(
        history,
        now=now,
        assistant_ids=assistant_ids,
        window_size=window_size,
        momentum_window=momentum_window,
    )
    signals = extract_signals(message.text)
    rules = SOLO_RULES if thread.participant_count == 1 else GROUP_RULES

    rule, confidence = evaluate_rules(rules, RuleInput(signals, thread, context))

    logger.debug(
        "Assistant decision made",
        thread_id=thread.id,
        rule=rule.name,
        should_respond=rule.should_respond,
        participant_count=thread.participant_count,
        confidence=confidence,
    )

    return Decision(
        should_respond=rule.should_respond,
        reason=rule.reason,
        confidence=confidence,
        response_type=rule.response_type,
        behavior_mode=rule.behavior_mode,
        context=context,
        signals=signals,
    )
