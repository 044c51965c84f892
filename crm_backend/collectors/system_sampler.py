from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Iterable

import psutil

from crm_backend.collectors.base import BaseCollector
from crm_backend.models import MemorySnapshot, RequestMetric, SystemSnapshot

if TYPE_CHECKING:
    from crm_backend.engine.monitor import PerformanceMonitor

logger = logging.getLogger(__name__)

_PROCESS = psutil.Process()


def read_cpu_seconds() -> float:
    """User CPU time consumed by this process, in seconds."""
    return _PROCESS.cpu_times().user


def read_memory() -> MemorySnapshot:
    vm = psutil.virtual_memory()
    return MemorySnapshot(
        used=vm.total - vm.available,
        total=vm.total,
        rss=_PROCESS.memory_info().rss,
    )


def read_uptime() -> float:
    return max(0.0, time.time() - _PROCESS.create_time())


def summarize(
    metrics: Iterable[RequestMetric],
    now: datetime,
    window: float = 60.0,
    cpu_seconds: float = 0.0,
    memory: MemorySnapshot | None = None,
    uptime: float = 0.0,
    active_connections: int = 0,
) -> SystemSnapshot:
    """Reduce the metrics falling in ``[now - window, now]`` to a snapshot.

    Recomputed from scratch each call, so the counts are exact relative to
    whatever the buffer still retains.
    """
    cutoff = now - timedelta(seconds=window)
    recent = [m for m in metrics if cutoff <= m.timestamp <= now]

    count = len(recent)
    if count:
        average = sum(m.response_time_ms for m in recent) / count
        error_rate = sum(1 for m in recent if m.is_error) * 100 / count
    else:
        average = 0.0
        error_rate = 0.0

    return SystemSnapshot(
        cpu_seconds=cpu_seconds,
        memory=memory or MemorySnapshot(),
        uptime_seconds=uptime,
        active_connections=active_connections,
        requests_per_minute=count,
        average_response_time_ms=average,
        error_rate_percent=error_rate,
        taken_at=now,
    )


class SystemSampler(BaseCollector):
    """Periodically folds the monitor's request buffer into a SystemSnapshot."""

    name = "system_sampler"

    def __init__(
        self,
        monitor: PerformanceMonitor,
        interval: float = 60.0,
        window: float = 60.0,
    ) -> None:
        super().__init__(interval=interval)
        self._monitor = monitor
        self.window = window

    def sample(self, now: datetime | None = None) -> SystemSnapshot:
        if now is None:
            now = datetime.now(timezone.utc)
        return summarize(
            self._monitor.metrics,
            now,
            window=self.window,
            cpu_seconds=read_cpu_seconds(),
            memory=read_memory(),
            uptime=read_uptime(),
            active_connections=self._monitor.active_requests,
        )

    async def collect(self) -> None:
        snapshot = self.sample()
        logger.debug(
            "Snapshot: rpm=%d avg=%.1fms errors=%.1f%%",
            snapshot.requests_per_minute,
            snapshot.average_response_time_ms,
            snapshot.error_rate_percent,
        )
        await self._monitor.add_snapshot(snapshot)
