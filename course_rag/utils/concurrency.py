"""Concurrency primitives for batched embedding dispatch.

Two pieces are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with every awaitable wrapped in
   a semaphore acquire/release, so at most N embedding batches are in flight.

2. **CancellationToken** -- a cooperative cancellation flag built on
   ``asyncio.Event``.  Long ingestion runs check it before dispatching each
   batch; a batch already talking to the provider is allowed to finish.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

import structlog

from course_rag.utils.errors import IngestionCancelledError
from course_rag.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    limit: int = 3,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore for concurrency control.  A fresh one of size *limit* is
        created when omitted; semaphores are never shared at module level
        because they bind to the running event loop.
    limit:
        Concurrency bound used when *semaphore* is not given.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(max(1, limit))

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


class CancellationToken:
    """Cooperative cancellation signal shared between a caller and a worker.

    The caller invokes :meth:`cancel`; the worker calls
    :meth:`raise_if_cancelled` at safe points (between batches).
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str = "Ingestion cancelled"

    def cancel(self, reason: str | None = None) -> None:
        if reason:
            self._reason = reason
        if not self._event.is_set():
            _logger.info("cancellation_requested", reason=self._reason)
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def raise_if_cancelled(self) -> None:
        """Raise :class:`IngestionCancelledError` once cancellation is signalled."""
        if self._event.is_set():
            raise IngestionCancelledError(message=self._reason)

    async def wait(self) -> None:
        await self._event.wait()
