"""Background writer that drains audit events off the request path."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from deviceauth.audit.models import AuditEvent
from deviceauth.audit.service import AuditLogger

LOGGER = logging.getLogger(__name__)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class AuditWorker:
    """Bounded in-process queue with one consumer task.

    ``log_event`` may be called from any thread and never blocks or raises.
    Calls from outside the worker's loop are handed over with
    ``call_soon_threadsafe``. When the queue is full the event is dropped and a
    warning is logged. Write failures are logged and discarded.
    """

    def __init__(
        self,
        audit_logger: AuditLogger,
        *,
        max_size: int = 1000,
        drain_timeout_seconds: float = 5.0,
    ) -> None:
        self._audit_logger = audit_logger
        self._queue: asyncio.Queue[AuditEvent] = asyncio.Queue(maxsize=max(1, max_size))
        self._drain_timeout_seconds = drain_timeout_seconds
        self._worker_task: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._dropped = 0

    @property
    def dropped_count(self) -> int:
        return self._dropped

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    def log_event(self, event: AuditEvent) -> None:
        """Enqueue without waiting; drops the event when the queue is full."""
        loop = self._loop
        if loop is None or _running_loop() is loop:
            self._enqueue(event)
            return
        try:
            loop.call_soon_threadsafe(self._enqueue, event)
        except RuntimeError:
            self._dropped += 1
            LOGGER.warning(
                "audit_loop_closed_event_dropped",
                extra={"action": str(event.action_type), "count": self._dropped},
            )

    def _enqueue(self, event: AuditEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1
            LOGGER.warning(
                "audit_queue_full_event_dropped",
                extra={"action": str(event.action_type), "count": self._dropped},
            )

    async def start(self) -> None:
        """Start background consumer if not already running."""
        if self._worker_task and not self._worker_task.done():
            return
        self._loop = asyncio.get_running_loop()
        self._worker_task = asyncio.create_task(self._worker_loop())

    async def flush(self) -> None:
        """Wait until every queued event has been processed."""
        # let hand-offs scheduled from other threads land first
        await asyncio.sleep(0)
        await self._queue.join()

    async def stop(self) -> None:
        """Drain pending events (bounded by a timeout) and stop the consumer."""
        if self._worker_task is None:
            return
        await asyncio.sleep(0)
        try:
            await asyncio.wait_for(self._queue.join(), timeout=self._drain_timeout_seconds)
        except asyncio.TimeoutError:
            LOGGER.warning(
                "audit_queue_drain_timed_out",
                extra={"count": self._queue.qsize()},
            )
        self._worker_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker_task
        self._worker_task = None
        self._loop = None

    async def _worker_loop(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await asyncio.to_thread(self._audit_logger.write_event, event)
            except Exception:
                LOGGER.exception(
                    "audit_write_failed",
                    extra={"action": str(event.action_type)},
                )
            finally:
                self._queue.task_done()
