"""
Completion client for OpenAI-compatible chat-completions APIs (Groq by default).

Retries transient failures (timeouts, connection errors, 5xx, empty replies)
with capped exponential backoff and jitter; never retries 4xx. Every failure
leaves this module as an UpstreamError subclass carrying an ErrorCategory, so
callers only ever show the category's friendly message.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import openai
from openai import AsyncOpenAI

from assistant_core.config import Settings, settings as default_settings
from assistant_core.infrastructure.observability.logging import get_logger
from assistant_core.services.errors import (
    ErrorCategory,
    InvalidInputError,
    NonRetryableUpstreamError,
    RetryExhaustedError,
    TransientUpstreamError,
    UpstreamError,
)

logger = get_logger(__name__)

MAX_JITTER_SECONDS = 1.0


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    messages: tuple[dict[str, str], ...]
    max_tokens: int = 400
    temperature: float = 0.6
    model: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CompletionResult:
    text: str
    tokens_used: int
    model_id: str
    finish_reason: str | None = None


def classify_api_error(error: Exception) -> UpstreamError:
    """Map an openai SDK exception onto the engine's error taxonomy."""
    if isinstance(error, UpstreamError):
        return error

    # APITimeoutError subclasses APIConnectionError, so check it first
    if isinstance(error, openai.APITimeoutError):
        return TransientUpstreamError(f"Completion API timed out: {error}")
    if isinstance(error, openai.APIConnectionError):
        return TransientUpstreamError(f"Cannot reach completion API: {error}")

    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return NonRetryableUpstreamError(
            f"Completion API rejected credentials: {error}",
            category=ErrorCategory.AUTHENTICATION_FAILED,
            status_code=error.status_code,
        )
    if isinstance(error, openai.RateLimitError):
        return NonRetryableUpstreamError(
            f"Completion API rate limit hit: {error}",
            category=ErrorCategory.RATE_LIMITED,
            status_code=error.status_code,
        )
    if isinstance(error, openai.APIStatusError):
        if error.status_code >= 500:
            return TransientUpstreamError(
                f"Completion API server error: {error}", status_code=error.status_code
            )
        return NonRetryableUpstreamError(
            f"Completion API client error: {error}",
            category=ErrorCategory.INVALID_REQUEST,
            status_code=error.status_code,
        )

    return TransientUpstreamError(f"Unexpected completion API failure: {error}")


def backoff_delay(
    retry: int,
    base_delay: float,
    max_delay: float,
    jitter: float = 0.0,
) -> float:
    """Delay before retry number `retry` (0-based), capped at `max_delay`."""
    return min(base_delay * (2**retry) + jitter, max_delay)


class CompletionClient:
    """
    Async client for chat completions.

    The SDK client is created lazily on first use so a missing API key only
    fails the jobs that need it, not application startup.
    """

    def __init__(
        self,
        config: Settings | None = None,
        client: Any | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.config = config or default_settings
        self.client = client
        self.model = self.config.COMPLETION_MODEL
        self.max_retries = self.config.COMPLETION_MAX_RETRIES
        self.base_delay = self.config.COMPLETION_BASE_DELAY_SECONDS
        self.max_delay = self.config.COMPLETION_MAX_DELAY_SECONDS
        self._sleep = sleep
        self._rng = rng or random.Random()

    def _initialize_client(self) -> AsyncOpenAI:
        """Initialize the OpenAI-compatible async client from settings."""
        if self.client is not None:
            return self.client

        if not self.config.COMPLETION_API_KEY:
            raise NonRetryableUpstreamError(
                "COMPLETION_API_KEY not configured in settings",
                category=ErrorCategory.AUTHENTICATION_FAILED,
            )

        self.client = AsyncOpenAI(
            api_key=self.config.COMPLETION_API_KEY,
            base_url=self.config.COMPLETION_BASE_URL,
            timeout=self.config.COMPLETION_TIMEOUT_SECONDS,
            max_retries=0,
        )

        logger.info(
            "Completion client initialized",
            model=self.model,
            base_url=self.config.COMPLETION_BASE_URL,
            timeout=self.config.COMPLETION_TIMEOUT_SECONDS,
        )
        return self.client

    async def generate(self, request: CompletionRequest) -> CompletionResult:
        """
        Generate a reply for a chat-completions request.

        Raises:
            InvalidInputError: request has no messages
            NonRetryableUpstreamError: 4xx or missing credentials
            RetryExhaustedError: transient failures outlasted every retry
        """
        if not request.messages:
            raise InvalidInputError("Completion request needs at least one message")

        client = self._initialize_client()
        model = request.model or self.model
        last_error: UpstreamError | None = None

        for retry in range(self.max_retries + 1):
            try:
                logger.debug(
                    "Calling completion API",
                    attempt=retry + 1,
                    max_attempts=self.max_retries + 1,
                    model=model,
                )

                response = await client.chat.completions.create(
                    model=model,
                    messages=list(request.messages),
                    max_tokens=request.max_tokens,
                    temperature=request.temperature,
                )

                if not response.choices or not (response.choices[0].message.content or "").strip():
                    raise TransientUpstreamError("Empty response from completion API")

                text = response.choices[0].message.content.strip()
                tokens_used = response.usage.total_tokens if response.usage else 0

                logger.info(
                    "Completion API call successful",
                    attempt=retry + 1,
                    response_length=len(text),
                    usage_tokens=tokens_used,
                )

                return CompletionResult(
                    text=text,
                    tokens_used=tokens_used,
                    model_id=getattr(response, "model", None) or model,
                    finish_reason=response.choices[0].finish_reason,
                )

            except Exception as e:
                error = classify_api_error(e)
                if not error.recoverable:
                    logger.error(
                        "Completion API client error (not retrying)",
                        error=str(e),
                        error_type=type(e).__name__,
                        category=error.category.value,
                        status_code=error.status_code,
                    )
                    raise error from e

                last_error = error
                if retry >= self.max_retries:
                    break

                delay = backoff_delay(
                    retry,
                    self.base_delay,
                    self.max_delay,
                    jitter=self._rng.uniform(0, MAX_JITTER_SECONDS),
                )
                logger.warning(
                    "Completion API error, retrying",
                    attempt=retry + 1,
                    wait_time=round(delay, 3),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._sleep(delay)

        logger.error(
            "Completion API call failed after all retries",
            max_retries=self.max_retries,
            final_error=str(last_error),
        )
        raise RetryExhaustedError(
            f"Completion API failed after {self.max_retries + 1} attempts",
            attempts=self.max_retries + 1,
            last_error=last_error,
        ) from last_error

    async def health_check(self) -> dict[str, Any]:
        """
        Health check for the completion API.

        Returns:
            dict: Health status and configuration
        """
        health_data: dict[str, Any] = {
            "healthy": True,
            "service": "completion_client",
            "configured": self.client is not None or self.config.completion_configured(),
            "configuration": {
                "model": self.model,
                "base_url": self.config.COMPLETION_BASE_URL,
                "timeout_seconds": self.config.COMPLETION_TIMEOUT_SECONDS,
                "max_retries": self.max_retries,
            },
        }

        if not health_data["configured"]:
            health_data["healthy"] = False
            health_data["api_connectivity"] = "not_configured"
            return health_data

        try:
            client = self._initialize_client()
            await asyncio.wait_for(
                client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": "Test"}],
                    max_tokens=1,
                ),
                timeout=5,
            )
            health_data["api_connectivity"] = "ok"
        except Exception as api_error:
            health_data["healthy"] = False
            health_data["api_connectivity"] = "error"
            health_data["api_error"] = str(api_error)

        return health_data
