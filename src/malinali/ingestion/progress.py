"""
Non-blocking progress delivery for ingestion.

The ingestion loop calls `report()` after every row. Delivery is scheduled
on the event loop and never awaited inline, so a slow consumer cannot
stall embedding. Reports that arrive before the previous one was
delivered are coalesced: only the latest (current, total) is delivered.
`flush()` delivers the final value and waits for async callbacks.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Set, Tuple, Union

logger = logging.getLogger("malinali.ingest")

ProgressCallback = Callable[[int, int], Union[None, Awaitable[None]]]


class ProgressReporter:
    """
    Coalescing, fire-and-forget wrapper around a progress callback.
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._callback = callback
        self._loop = loop
        self._latest: Optional[Tuple[int, int]] = None
        self._scheduled = False
        self._delivered: Optional[Tuple[int, int]] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def last_delivered(self) -> Optional[Tuple[int, int]]:
        return self._delivered

    def report(self, current: int, total: int) -> None:
        if self._callback is None:
            return

        self._latest = (current, total)
        if self._scheduled:
            return

        loop = self._loop or asyncio.get_running_loop()
        self._scheduled = True
        loop.call_soon(self._deliver)

    def _deliver(self) -> None:
        self._scheduled = False
        value = self._latest
        if value is None or value == self._delivered:
            return

        self._delivered = value
        try:
            result = self._callback(*value)
        except Exception:
            logger.exception("Progress callback failed at %d/%d", *value)
            return

        if inspect.isawaitable(result):
            loop = self._loop or asyncio.get_running_loop()
            task = loop.create_task(_await(result))
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async progress callback failed: %s", exc, exc_info=exc)

    async def flush(self) -> None:
        """
        Deliver the latest value if it is still pending and wait for any
        async callbacks in flight.
        """
        if self._callback is None:
            return

        if self._latest is not None and self._latest != self._delivered:
            self._deliver()

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


async def _await(awaitable: Awaitable[None]) -> None:
    await awaitable
