"""
Assistant API request models.
Used by routes for input validation.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

from assistant_core.models.domain.conversation_domain import Message, Thread


class MessageIn(BaseModel):
    """A chat message as posted to a conversation."""

    text: str = Field(default="", max_length=10000, description="Message text")
    sender_id: str = Field(..., min_length=1, description="Sender identifier")
    timestamp: datetime = Field(..., description="When the message was sent")

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are treated as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def to_domain(self) -> Message:
        return Message(text=self.text, sender_id=self.sender_id, timestamp=self.timestamp)


class ThreadIn(BaseModel):
    """The conversation the message belongs to."""

    id: str = Field(..., min_length=1, description="Conversation ID")
    participants: list[str] = Field(..., min_length=1, description="Participant IDs")
    title: str = Field(default="", max_length=200, description="Thread title")
    description: str = Field(default="", max_length=1000, description="Thread description")
    category: str | None = Field(default=None, description="Thread category, used as topic")
    tags: list[str] = Field(default_factory=list, description="Thread tags")
    learner_level: str = Field(default="intermediate", description="Learner level")

    def to_domain(self) -> Thread:
        return Thread(
            id=self.id,
            participants=tuple(self.participants),
            title=self.title,
            description=self.description,
            category=self.category,
            tags=tuple(self.tags),
            learner_level=self.learner_level,
        )


class DecideRequest(BaseModel):
    """Request for an assistant decision on one message."""

    message: MessageIn
    thread: ThreadIn
    recent_messages: list[MessageIn] = Field(
        default_factory=list, max_length=100, description="Recent history, oldest first"
    )

    def recent_domain_messages(self) -> list[Message]:
        return [m.to_domain() for m in self.recent_messages]
