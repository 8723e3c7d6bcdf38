"""
Error taxonomy for the assistant orchestration engine.

Every upstream failure is reduced to a small set of categories with stable,
user-facing messages so callers never interpret provider-specific codes.
"""

from enum import Enum


class ErrorCategory(str, Enum):
    RATE_LIMITED = "rate_limited"
    AUTHENTICATION_FAILED = "authentication_failed"
    INVALID_REQUEST = "invalid_request"
    TEMPORARILY_UNAVAILABLE = "temporarily_unavailable"


USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.RATE_LIMITED: "AI service is busy. Please wait a moment and try again.",
    ErrorCategory.AUTHENTICATION_FAILED: "AI service authentication failed. Please contact support.",
    ErrorCategory.INVALID_REQUEST: (
        "Invalid request to AI service. Please try rephrasing your message."
    ),
    ErrorCategory.TEMPORARILY_UNAVAILABLE: (
        "AI service is temporarily unavailable. Please try again later."
    ),
}


class AssistantError(Exception):
    """Base exception for assistant engine errors."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class InvalidInputError(AssistantError):
    """Raised when a message, thread or request is malformed."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)


class QueueClosedError(AssistantError):
    """Raised when submitting to a queue that is shutting down."""

    def __init__(self, message: str = "Response queue is shut down"):
        super().__init__(message, recoverable=False)


class UpstreamError(AssistantError):
    """Failure reported by (or while reaching) the completion API."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.TEMPORARILY_UNAVAILABLE,
        status_code: int | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message, recoverable=recoverable)
        self.category = category
        self.status_code = status_code

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.category]


class TransientUpstreamError(UpstreamError):
    """Timeout, network failure or 5xx; safe to retry."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.TEMPORARILY_UNAVAILABLE,
        status_code: int | None = None,
    ):
        super().__init__(message, category=category, status_code=status_code, recoverable=True)


class NonRetryableUpstreamError(UpstreamError):
    """Authentication, authorization or bad-request failure; never retried."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INVALID_REQUEST,
        status_code: int | None = None,
    ):
        super().__init__(message, category=category, status_code=status_code, recoverable=False)


class RetryExhaustedError(UpstreamError):
    """All retries of a transient failure were used up."""

    def __init__(self, message: str, attempts: int, last_error: Exception | None = None):
        super().__init__(
            message,
            category=ErrorCategory.TEMPORARILY_UNAVAILABLE,
            status_code=getattr(last_error, "status_code", None),
            recoverable=True,
        )
        self.attempts = attempts
        self.last_error = last_error


def user_message_for(error: Exception) -> str:
    """Friendly message for any error; internal details never leak."""
    if isinstance(error, UpstreamError):
        return error.user_message
    if isinstance(error, InvalidInputError):
        return USER_MESSAGES[ErrorCategory.INVALID_REQUEST]
    return USER_MESSAGES[ErrorCategory.TEMPORARILY_UNAVAILABLE]
