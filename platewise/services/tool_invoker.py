"""
Tool invocation layer: one model request per call, with retry/backoff.

Transient network failures (connection lost, not connected, timeout) are
retried under an explicit RetryPolicy; every other failure is mapped to a
typed error and surfaced immediately. No caching happens at this layer.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import Awaitable, Callable, Optional

import anthropic
import httpx

from platewise.config import settings
from platewise.services.analysis_schemas import AnalysisTool
from platewise.services.model_client import ModelClient


logger = logging.getLogger(__name__)


TRANSIENT_ERRORS = (
    anthropic.APIConnectionError,  # includes APITimeoutError
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)


def is_transient_error(exc: BaseException) -> bool:
    return isinstance(exc, TRANSIENT_ERRORS)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry budget for transient failures.

    Attempt N (1-based) that fails transiently is followed by a sleep of
    N * base_delay seconds, so the default budget sleeps 2s then 4s before
    giving up after the third attempt.
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    is_retryable: Callable[[BaseException], bool] = is_transient_error
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
        )

    def delay_for(self, attempt: int) -> float:
        return attempt * self.base_delay


def retry_on_transient_error(policy: RetryPolicy):
    """
    Retry decorator for coroutines that may fail due to transient network issues.

    Args:
        policy: Attempt budget, backoff and retryable-error predicate
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(1, policy.max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not policy.is_retryable(e):
                        raise
                    last_exception = e

                    if attempt < policy.max_attempts:
                        delay = policy.delay_for(attempt)
                        logger.warning(
                            "Transient error on attempt %d/%d (%s), retrying in %.1fs...",
                            attempt,
                            policy.max_attempts,
                            type(e).__name__,
                            delay,
                        )
                        await policy.sleep(delay)
                    else:
                        logger.error("All %d attempts failed", policy.max_attempts)

            raise NetworkError("retries exhausted") from last_exception

        return wrapper

    return decorator


@dataclass(frozen=True)
class ToolResponse:
    tool: AnalysisTool
    text: str
    elapsed: float
    attempts: int


class ToolInvoker:
    """Issues a single model request for a tool and returns its raw text."""

    def __init__(
        self,
        model_client: ModelClient,
        retry_policy: Optional[RetryPolicy] = None,
        latency_listener: Optional[Callable[[AnalysisTool, float], None]] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.model_client = model_client
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.latency_listener = latency_listener
        self.clock = clock

    async def invoke(
        self,
        prompt_variables: dict,
        image: Optional[bytes] = None,
        tool: AnalysisTool = AnalysisTool.INITIAL,
    ) -> ToolResponse:
        """
        Run one model request with retry/backoff.

        Args:
            prompt_variables: Prompt payload (system, prompt, max_tokens)
            image: Optional inline image bytes
            tool: Tool tag, used for logging and latency reporting

        Returns:
            ToolResponse with the raw text, elapsed seconds and attempt count

        Raises:
            InvalidInputError: Neither an image nor a prompt was supplied
            NetworkError: Transient failures exhausted the retry budget
            InvalidResponseError: The model returned no text
            RateLimitError: Too many requests
            ServiceUnavailableError: The model service returned a 5xx
            ModelRequestError: Any other rejected request
        """
        prompt = (prompt_variables or {}).get("prompt") or ""
        if not image and not prompt.strip():
            raise InvalidInputError("An image or a text prompt is required")

        attempts = 0

        @retry_on_transient_error(self.retry_policy)
        async def call_model():
            nonlocal attempts
            attempts += 1
            return await self.model_client.generate(prompt_variables, image)

        start = self.clock()
        try:
            text = await call_model()
        except AnalysisError:
            raise
        except anthropic.RateLimitError as e:
            raise RateLimitError(
                "Too many requests, please try again in 1 minute"
            ) from e
        except anthropic.APIStatusError as e:
            if e.status_code >= 500:
                raise ServiceUnavailableError("AI service error") from e
            raise ModelRequestError(f"Request error: {e.message}") from e
        elapsed = self.clock() - start

        self._report_latency(tool, elapsed)
        logger.info(
            "Tool %s completed in %.2fs after %d attempt(s)",
            tool.value,
            elapsed,
            attempts,
        )

        if not text or not text.strip():
            raise InvalidResponseError(f"Empty response from model for {tool.value}")

        return ToolResponse(tool=tool, text=text, elapsed=elapsed, attempts=attempts)

    def _report_latency(self, tool: AnalysisTool, elapsed: float) -> None:
        """Hand latency to the listener on the next loop iteration."""
        if self.latency_listener is None:
            return
        asyncio.get_running_loop().call_soon(self.latency_listener, tool, elapsed)


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================


class AnalysisError(Exception):
    """Base class for meal analysis failures."""

    pass


class InvalidInputError(AnalysisError):
    """Neither an image nor a transcript was supplied."""

    pass


class NetworkError(AnalysisError):
    """Transient connectivity failures outlasted the retry budget."""

    pass


class InvalidResponseError(AnalysisError):
    """The model returned no usable text."""

    pass


class RateLimitError(AnalysisError):
    """Rate limit exceeded."""

    pass


class ServiceUnavailableError(AnalysisError):
    """AI service is temporarily unavailable."""

    pass


class ModelRequestError(AnalysisError):
    """The model service rejected the request."""

    pass


class ToolFailureError(AnalysisError):
    """A secondary analysis tool failed."""

    def __init__(self, tool: AnalysisTool, message: str):
        super().__init__(message)
        self.tool = tool


class AnalysisTimeoutError(AnalysisError):
    """The whole analysis exceeded its wall-clock budget."""

    pass


class AnalysisCancelledError(AnalysisError):
    """The caller abandoned the analysis."""

    pass
