"""Retry orchestration around the transport.

Bounded, strictly sequential attempts with exponential backoff and jitter.
Server-provided ``Retry-After`` delays take precedence over the computed
backoff. Timeouts are retried once at most.
"""

import asyncio
import logging
import random
import time
from collections.abc import Callable
from dataclasses import replace
from typing import Any, Protocol

from .errors import ErrorKind, LLMError, normalize_error
from .models import DEFAULT_RETRY_POLICY, RawResponse, RetryPolicy
from .safe_logging import safe_extra

logger = logging.getLogger(__name__)

# Jitter adds up to this fraction of the base delay
JITTER_RATIO = 0.3


class Transport(Protocol):
    async def send(
        self,
        path: str,
        body: dict[str, Any],
        timeout: float | None = None,
    ) -> RawResponse: ...


def compute_backoff_delay(
    policy: RetryPolicy,
    attempt: int,
    rand: Callable[[], float] = random.random,
) -> float:
    """Delay in seconds before retrying after failed ``attempt`` (1-indexed).

    ``min(initial * multiplier^(attempt-1), max_delay)`` plus 0-30% jitter,
    so the result never exceeds ``max_delay * 1.3``.
    """
    base_delay = min(
        policy.initial_delay * policy.backoff_multiplier ** (attempt - 1),
        policy.max_delay,
    )
    return base_delay + rand() * JITTER_RATIO * base_delay


def should_retry(
    error: LLMError,
    attempt: int,
    policy: RetryPolicy,
    timeouts_seen: int = 0,
) -> bool:
    """Decide whether a failed attempt gets another try.

    Args:
        error: Classified failure of the attempt.
        attempt: Number of the attempt that failed (1-indexed).
        policy: Active retry policy.
        timeouts_seen: Timeouts observed so far, including this one.
    """
    if attempt >= policy.max_attempts:
        return False
    if not error.is_retryable_kind:
        return False
    if error.kind is ErrorKind.TIMEOUT:
        # Repeated timeouts would only double an already long wait
        return timeouts_seen <= 1
    return True


class RetryOrchestrator:
    """Runs transport calls under a RetryPolicy."""

    def __init__(
        self,
        transport: Transport,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        rand: Callable[[], float] = random.random,
    ):
        self._transport = transport
        self._policy = policy
        self._rand = rand

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def execute(
        self,
        path: str,
        body: dict[str, Any],
        policy: RetryPolicy | None = None,
    ) -> RawResponse:
        """Send ``body`` with retries.

        Returns:
            The successful response, with ``attempts`` and total ``elapsed_ms``.

        Raises:
            LLMError: The last classified failure once retrying stops.
        """
        policy = policy or self._policy
        model = body.get("model")
        start_time = time.perf_counter()
        timeouts_seen = 0
        attempt = 1

        while True:
            try:
                response = await self._transport.send(path, body)
            except Exception as e:
                error = normalize_error(e)
                if error.kind is ErrorKind.TIMEOUT:
                    timeouts_seen += 1

                if not should_retry(error, attempt, policy, timeouts_seen):
                    logger.warning(
                        "LLM request failed after %d attempt(s): %s",
                        attempt,
                        error.kind.value,
                        extra=safe_extra(
                            model=model,
                            path=path,
                            attempts=attempt,
                            max_attempts=policy.max_attempts,
                            error_kind=error.kind.value,
                            status_code=error.status,
                            request_id=error.request_id,
                            latency_ms=self._elapsed_ms(start_time),
                        ),
                    )
                    if error is e:
                        raise
                    raise error from e

                if error.kind is ErrorKind.RATE_LIMIT and error.retry_after is not None:
                    delay = error.retry_after
                else:
                    delay = compute_backoff_delay(policy, attempt, self._rand)

                logger.info(
                    "Retryable LLM error on attempt %d/%d, retrying in %.2fs",
                    attempt,
                    policy.max_attempts,
                    delay,
                    extra=safe_extra(
                        model=model,
                        path=path,
                        attempt=attempt,
                        max_attempts=policy.max_attempts,
                        error_kind=error.kind.value,
                        status_code=error.status,
                        retry_after=error.retry_after,
                        delay_ms=int(delay * 1000),
                    ),
                )
                await asyncio.sleep(delay)
                attempt += 1
                continue

            latency_ms = self._elapsed_ms(start_time)
            logger.info(
                "LLM request succeeded",
                extra=safe_extra(
                    model=model,
                    path=path,
                    attempts=attempt,
                    latency_ms=latency_ms,
                    request_id=response.request_id,
                ),
            )
            return replace(response, attempts=attempt, elapsed_ms=latency_ms)

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.perf_counter() - start_time) * 1000)
