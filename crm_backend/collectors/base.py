from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class BaseCollector(ABC):
    """Abstract base for periodic background collectors.

    Subclasses implement ``collect()``. The base class handles the async loop,
    interval timing, and graceful shutdown. Work runs on a timer, never on
    request traffic: the first ``collect()`` happens one interval after
    ``start()``.
    """

    name: str = "base"
    interval: float = 60.0  # seconds between collections

    def __init__(self, interval: float | None = None) -> None:
        if interval is not None:
            self.interval = interval
        self._running = False
        self._task: asyncio.Task | None = None

    # ── lifecycle ────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Collector [%s] started (interval=%.1fs)", self.name, self.interval)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Collector [%s] stopped", self.name)

    # ── abstract method ─────────────────────────────────

    @abstractmethod
    async def collect(self) -> None:
        """Run one collection cycle."""
        ...

    # ── internals ───────────────────────────────────────

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                await self.collect()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Collector [%s] error during collect()", self.name)

    @property
    def running(self) -> bool:
        return self._running
