"""
Domain models for conversations and assistant decisions.

Lightweight immutable dataclasses shared by the decision services, the
response queue and the API layer. They carry no behaviour beyond a few
derived properties.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

STUDY_TAGS = {"study", "learning", "homework"}


class Tone(str, Enum):
    NEUTRAL = "neutral"
    ACADEMIC = "academic"
    INQUISITIVE = "inquisitive"
    ACTIVE = "active"


class BehaviorMode(str, Enum):
    """Conversational stance used to shape the generated reply."""

    PERSONAL_TUTOR = "personal_tutor"
    FOCUSED_TUTOR = "focused_tutor"
    SUPPORTIVE_ASSISTANT = "supportive_assistant"
    THOUGHTFUL_COMPANION = "thoughtful_companion"
    COLLABORATIVE_ASSISTANT = "collaborative_assistant"
    FACILITATING_TUTOR = "facilitating_tutor"
    EXPERT_CONSULTANT = "expert_consultant"
    SELECTIVE_EXPERT = "selective_expert"
    COLLABORATIVE_TUTOR = "collaborative_tutor"
    STANDARD = "standard"


class ResponseType(str, Enum):
    NONE = "none"
    DIRECT_RESPONSE = "direct_response"
    TUTORING = "tutoring"
    EDUCATIONAL = "educational"
    HELPFUL = "helpful"
    CONVERSATIONAL = "conversational"
    TECHNICAL_ASSISTANCE = "technical_assistance"
    SUPPLEMENTARY = "supplementary"


@dataclass(frozen=True, slots=True)
class Message:
    """A single chat message as handed to the engine by the caller."""

    text: str
    sender_id: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Thread:
    """The conversation a message was posted to."""

    id: str
    participants: tuple[str, ...]
    title: str = ""
    description: str = ""
    category: str | None = None
    tags: tuple[str, ...] = ()
    learner_level: str = "intermediate"

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    @property
    def topic(self) -> str:
        return (self.category or "general").strip().lower() or "general"

    @property
    def is_study_session(self) -> bool:
        if "study" in self.title.lower() or "study" in self.description.lower():
            return True
        return any(tag.lower() in STUDY_TAGS for tag in self.tags)


@dataclass(frozen=True, slots=True)
class ConversationContext:
    topics: frozenset[str] = frozenset()
    has_recent_assistant_turn: bool = False
    momentum: float = 0.0
    participation_level: float = 0.0
    dominant_tone: Tone = Tone.NEUTRAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "topics": sorted(self.topics),
            "has_recent_assistant_turn": self.has_recent_assistant_turn,
            "momentum": round(self.momentum, 3),
            "participation_level": round(self.participation_level, 3),
            "dominant_tone": self.dominant_tone.value,
        }


@dataclass(frozen=True, slots=True)
class QuestionSignal:
    is_question: bool
    question_type: str | None
    confidence: float


@dataclass(frozen=True, slots=True)
class AcademicSignal:
    is_academic: bool
    subject: str | None
    indicators: tuple[str, ...]
    confidence: float


@dataclass(frozen=True, slots=True)
class MessageSignals:
    """Every detector output for one message, computed once."""

    length: int
    trivial: bool
    explicit_mention: bool
    question: QuestionSignal
    academic: AcademicSignal
    personal_casual: bool
    math_expression: bool
    code_pattern: bool
    educational_keywords: bool
    error_keyword: bool

    @property
    def is_question(self) -> bool:
        return self.question.is_question

    @property
    def is_academic(self) -> bool:
        return self.academic.is_academic

    @property
    def is_technical(self) -> bool:
        return self.math_expression or self.code_pattern


@dataclass(frozen=True, slots=True)
class Decision:
    should_respond: bool
    reason: str
    confidence: float
    response_type: ResponseType
    behavior_mode: BehaviorMode
    context: ConversationContext
    signals: MessageSignals | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "should_respond": self.should_respond,
            "reason": self.reason,
            "confidence": self.confidence,
            "response_type": self.response_type.value,
            "behavior_mode": self.behavior_mode.value,
            "context": self.context.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class PriorityScore:
    priority: float
    factors: dict[str, bool | float]
