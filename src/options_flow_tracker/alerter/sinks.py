"""Progress sinks.

Components report progress explicitly through a :class:`ProgressSink`.
The terminal sink writes to the standard logger; the remote sink mirrors
selected events to the log destination through a bounded queue drained
at the dispatcher's pace.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol

from options_flow_tracker.alerter.models import Destination

if TYPE_CHECKING:
    from options_flow_tracker.alerter.dispatcher import AlertDispatcher

logger = logging.getLogger(__name__)

TRADE_SAVED = "trade_saved"
CYCLE_SUMMARY = "cycle_summary"
ERROR = "error"

DEFAULT_REMOTE_EVENTS = frozenset({TRADE_SAVED})
DEFAULT_QUEUE_SIZE = 1000


class ProgressSink(Protocol):
    def report(self, event: str, message: str) -> None: ...


class TerminalSink:
    """Writes progress lines to the process log."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def report(self, event: str, message: str) -> None:
        if event == ERROR:
            self._log.error("%s", message)
        else:
            self._log.info("%s", message)


class RemoteSink:
    """Mirrors selected progress events to a remote destination.

    ``report`` never blocks: lines are queued and a background task hands
    them to the dispatcher, which paces and chunks them. When the backlog
    is full new lines are dropped.
    """

    def __init__(
        self,
        dispatcher: AlertDispatcher,
        *,
        destination: Destination = Destination.LOG,
        events: Iterable[str] = DEFAULT_REMOTE_EVENTS,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._dispatcher = dispatcher
        self._destination = destination
        self._events = frozenset(events)
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_queue_size)
        self._task: asyncio.Task[None] | None = None
        self.dropped = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def report(self, event: str, message: str) -> None:
        if event not in self._events:
            return
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1

    async def drain(self) -> int:
        """Send everything queued right now. Returns the number of lines sent."""
        sent = 0
        while not self._queue.empty():
            message = self._queue.get_nowait()
            try:
                result = await self._dispatcher.send_text(self._destination, message)
            finally:
                self._queue.task_done()
            if result.success:
                sent += 1
        return sent

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self._dispatcher.send_text(self._destination, message)
            except Exception as e:
                logger.warning("Remote log delivery error: %s", e)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None


class CompositeSink:
    """Fans each report out to several sinks."""

    def __init__(self, sinks: Iterable[ProgressSink]) -> None:
        self._sinks = tuple(sinks)

    def report(self, event: str, message: str) -> None:
        for sink in self._sinks:
            sink.report(event, message)
