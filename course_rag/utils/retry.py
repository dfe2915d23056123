"""Exponential-backoff retry for external API calls.

Only :class:`~course_rag.utils.errors.ExternalServiceError` instances whose
``retryable`` flag is set are retried (transport failures, HTTP 429, HTTP
5xx).  Authentication (401/403) and validation (400/404/422) failures
surface immediately.

Delay for attempt *n* (1-based) is ``initial_delay * factor ** (n - 1)``,
capped at ``max_delay`` and spread by +/-25% jitter so concurrent batches do
not hammer the provider in lock-step.  A ``Retry-After`` hint from a 429
response takes precedence when it is longer than the computed delay.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import structlog

from course_rag.utils.errors import ExternalServiceError

logger = structlog.get_logger(logger_name=__name__)

_T = TypeVar("_T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters; ``max_retries`` counts retries after the first try."""

    max_retries: int = 3
    initial_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.25

    def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
        base = min(self.initial_delay * self.factor ** (attempt - 1), self.max_delay)
        if self.jitter <= 0:
            return base
        spread = base * self.jitter
        return max(0.0, base + (rng or random).uniform(-spread, spread))


async def retry_async(
    operation: Callable[[], Awaitable[_T]],
    policy: RetryPolicy | None = None,
    operation_name: str = "external_call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> _T:
    """Await ``operation()`` until it succeeds or a non-retryable error occurs.

    Parameters
    ----------
    operation:
        Zero-argument coroutine factory.  Called once per attempt.
    policy:
        Backoff settings; defaults to :class:`RetryPolicy` defaults.
    operation_name:
        Used only in log events.
    sleep:
        Awaitable sleep function, injectable for tests.

    Raises
    ------
    ExternalServiceError
        The last error once retries are exhausted, or immediately when the
        error is not retryable.
    """
    policy = policy or RetryPolicy()
    total_attempts = policy.max_retries + 1

    for attempt in range(1, total_attempts + 1):
        try:
            return await operation()
        except ExternalServiceError as exc:
            if not exc.retryable or attempt == total_attempts:
                logger.warning(
                    "retry_giving_up",
                    operation=operation_name,
                    attempt=attempt,
                    status=exc.status_code,
                    retryable=exc.retryable,
                    error=exc.message,
                )
                raise
            delay = policy.delay_for(attempt)
            if exc.retry_after is not None:
                delay = max(delay, exc.retry_after)
            logger.info(
                "retry_scheduled",
                operation=operation_name,
                attempt=attempt,
                status=exc.status_code,
                delay=round(delay, 3),
            )
            await sleep(delay)

    # Loop always returns or raises; this satisfies type checkers.
    raise ExternalServiceError(message=f"{operation_name} exhausted retries")
