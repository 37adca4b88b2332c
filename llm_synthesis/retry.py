"""Bounded generation calls.

Each call to the channel runs under a timeout. A call that times out,
raises, or returns no content counts as a failed attempt; failed attempts
are retried up to ``max_retries`` times before GenerationFailedError is
raised. Cancellation is never retried.
"""

import asyncio
import logging
from typing import List, Optional

from llm_synthesis.adapter import BaseLLMAdapter
from llm_synthesis.schema import GenerationRequest
from llm_synthesis.usage import UsageTracker
from llm_synthesis.validator import clean_generated_text

logger = logging.getLogger(__name__)


class GenerationFailedError(Exception):
    """Raised when every attempt of one generation call fails.

    Attributes:
        attempts: Total number of attempts made (initial + retries).
        last_error: The error from the final attempt.
        history: Errors from every failed attempt.
    """

    def __init__(
        self,
        attempts: int,
        last_error: Exception,
        history: List[Exception],
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        self.history = history
        super().__init__(
            f"Generation failed after {attempts} attempt(s). "
            f"Last error: {last_error!r}"
        )


class EmptyResponseError(Exception):
    """Raised when the channel returns no usable content."""


async def generate_with_retry(
    adapter: BaseLLMAdapter,
    request: GenerationRequest,
    timeout_seconds: float = 30.0,
    max_retries: int = 0,
    tracker: Optional[UsageTracker] = None,
) -> str:
    """Generate text with a per-attempt ceiling and optional retries.

    Args:
        adapter: A generation adapter; its ``complete(request)`` is awaited.
        request: The request to send.
        timeout_seconds: Ceiling for one attempt.
        max_retries: Maximum number of *additional* attempts after the
            first failure. Total attempts = 1 + max_retries.
        tracker: Receives the usage of every answered attempt.

    Returns:
        The cleaned response text.

    Raises:
        GenerationFailedError: If all attempts fail.
        asyncio.CancelledError: If the caller cancels the call.
    """
    errors: List[Exception] = []
    total_attempts = 1 + max(0, max_retries)

    for attempt in range(1, total_attempts + 1):
        try:
            response = await asyncio.wait_for(adapter.complete(request), timeout=timeout_seconds)
            if tracker is not None:
                tracker.add(request.kind, response.usage)
            text = clean_generated_text(response.text)
            if not text:
                raise EmptyResponseError("generation channel returned no content")
            if attempt > 1:
                logger.info("Generation succeeded on attempt %d/%d", attempt, total_attempts)
            return text

        except asyncio.TimeoutError as exc:
            errors.append(exc)
            logger.warning(
                "Attempt %d/%d timed out after %.1fs (%s request)",
                attempt,
                total_attempts,
                timeout_seconds,
                request.kind,
            )
        except Exception as exc:
            errors.append(exc)
            logger.warning(
                "Attempt %d/%d failed (%s request): %s",
                attempt,
                total_attempts,
                request.kind,
                exc,
            )

    raise GenerationFailedError(
        attempts=total_attempts,
        last_error=errors[-1],
        history=errors,
    )
