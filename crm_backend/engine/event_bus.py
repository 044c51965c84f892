from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from crm_backend.models import SystemEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[SystemEvent], Awaitable[None]]


class EventBus:
    """Moves diagnostic events off the request path.

    Producers call ``emit`` from synchronous code and never wait; when the
    queue is full the event is counted as dropped. A single consumer task
    hands each event to every subscriber in turn, and a failing subscriber
    is logged and skipped. ``stop`` lets the queue empty (bounded by
    ``drain_timeout``) before cancelling the consumer.
    """

    def __init__(self, maxsize: int = 1000, drain_timeout: float = 5.0) -> None:
        self._queue: asyncio.Queue[SystemEvent] = asyncio.Queue(maxsize=maxsize)
        self._subscribers: list[Subscriber] = []
        self._consumer_task: asyncio.Task | None = None
        self.drain_timeout = drain_timeout
        self.delivered = 0
        self.dropped = 0

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def emit(self, event: SystemEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("EventBus full, dropped %s event: %s", event.level, event.message)
            return False
        return True

    # ── lifecycle ────────────────────────────────────────

    async def start(self) -> None:
        if self._consumer_task is not None:
            return
        self._consumer_task = asyncio.create_task(self._consume())
        logger.info("EventBus started with %d subscriber(s)", len(self._subscribers))

    async def stop(self) -> None:
        task = self._consumer_task
        if task is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=self.drain_timeout)
        except asyncio.TimeoutError:
            logger.warning("EventBus stopping with %d undelivered event(s)", self._queue.qsize())
        self._consumer_task = None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("EventBus stopped: %d delivered, %d dropped", self.delivered, self.dropped)

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    async def _deliver(self, event: SystemEvent) -> None:
        for callback in self._subscribers:
            try:
                await callback(event)
            except Exception:
                logger.exception("EventBus subscriber %r failed on event %s", callback, event.id)
        self.delivered += 1

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._consumer_task is not None
