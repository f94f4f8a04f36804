"""Periodic progress reporting.

A ``Heartbeat`` runs beside the stream loop and pushes
``tracker.format_message()`` to a sink every *interval* seconds until the
tracker is marked done.  Sink failures are logged and dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from typing import Any, Callable

from .tracker import ProgressTracker

_logger = logging.getLogger(__name__)

# Sync or async callable taking one formatted status line
ProgressSink = Callable[[str], Any]


async def deliver(sink: ProgressSink, message: str) -> bool:
    """Send *message* to *sink*.  Returns False if the sink raised."""
    try:
        result = sink(message)
        if inspect.isawaitable(result):
            await result
    except Exception:
        _logger.debug(
            "Progress sink %s failed, update dropped",
            getattr(sink, "__name__", sink),
            exc_info=True,
        )
        return False
    return True


class Heartbeat:
    """Async context manager that owns the reporting task.

    Leaving the context marks the tracker done and cancels the task,
    whether the body succeeded or raised.
    """

    def __init__(
        self,
        tracker: ProgressTracker,
        sink: ProgressSink | None,
        interval: float = 0.25,
    ) -> None:
        self.tracker = tracker
        self.sink = sink
        self.interval = interval
        self.delivered = 0
        self.dropped = 0
        self._task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> Heartbeat:
        self.tracker.done = False
        if self.sink is not None:
            self._task = asyncio.create_task(self._run())
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.tracker.done = True
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        assert self.sink is not None
        while True:
            await asyncio.sleep(self.interval)
            if self.tracker.done:
                return
            if await deliver(self.sink, self.tracker.format_message()):
                self.delivered += 1
            else:
                self.dropped += 1
