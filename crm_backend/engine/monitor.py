from __future__ import annotations

import logging
import random
import string
import time
from collections import Counter, defaultdict, deque
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from crm_backend.collectors.system_sampler import SystemSampler, read_memory
from crm_backend.config import Settings, settings
from crm_backend.engine.health import DEFAULT_THRESHOLDS, classify_health
from crm_backend.models import (
    EndpointErrorRate,
    EndpointStats,
    HealthThresholds,
    HealthVerdict,
    MemorySnapshot,
    RequestMetric,
    SystemSnapshot,
)

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[SystemSnapshot, HealthVerdict], Awaitable[None]]
MemoryProbe = Callable[[], MemorySnapshot]

_ID_ALPHABET = string.ascii_lowercase + string.digits


class PerformanceMonitor:
    """In-process request telemetry.

    Owns a bounded buffer of per-request metrics, a bounded history of
    periodic system snapshots, and the background sampler that produces them.
    All mutation happens on the event loop thread; nothing here is persisted.
    """

    def __init__(
        self,
        capacity: int = 1000,
        snapshot_capacity: int = 60,
        sample_interval: float = 60.0,
        sample_window: float = 60.0,
        thresholds: HealthThresholds = DEFAULT_THRESHOLDS,
        memory_probe: MemoryProbe = read_memory,
    ) -> None:
        self.capacity = capacity
        self.thresholds = thresholds
        self.memory_probe = memory_probe
        self._metrics: deque[RequestMetric] = deque(maxlen=capacity)
        self._snapshots: deque[SystemSnapshot] = deque(maxlen=snapshot_capacity)
        self._request_counts: Counter[str] = Counter()
        self._error_counts: Counter[str] = Counter()
        self._listeners: list[SnapshotListener] = []
        self._active = 0
        self.sampler = SystemSampler(self, interval=sample_interval, window=sample_window)

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> PerformanceMonitor:
        return cls(
            capacity=cfg.metrics_capacity,
            snapshot_capacity=cfg.snapshot_capacity,
            sample_interval=cfg.sample_interval,
            sample_window=cfg.sample_window,
        )

    # ── lifecycle ────────────────────────────────────────

    async def start(self) -> None:
        await self.sampler.start()

    async def stop(self) -> None:
        await self.sampler.stop()

    @property
    def running(self) -> bool:
        return self.sampler.running

    # ── recording ────────────────────────────────────────

    @staticmethod
    def new_request_id() -> str:
        suffix = "".join(random.choices(_ID_ALPHABET, k=9))
        return f"{int(time.time() * 1000)}-{suffix}"

    def request_started(self) -> None:
        self._active += 1

    def request_finished(self) -> None:
        self._active = max(0, self._active - 1)

    @property
    def active_requests(self) -> int:
        return self._active

    def record(self, metric: RequestMetric) -> None:
        """Append a completed request. The oldest entry is evicted at capacity."""
        self._metrics.append(metric)
        key = metric.endpoint
        self._request_counts[key] += 1
        if metric.is_error:
            self._error_counts[key] += 1

    async def add_snapshot(self, snapshot: SystemSnapshot) -> None:
        self._snapshots.append(snapshot)
        if not self._listeners:
            return
        verdict = classify_health(snapshot, self.thresholds)
        for listener in list(self._listeners):
            try:
                await listener(snapshot, verdict)
            except Exception:
                logger.exception("Snapshot listener %s failed", listener)

    def add_listener(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SnapshotListener) -> None:
        self._listeners.remove(listener)

    def clear(self) -> None:
        self._metrics.clear()
        self._snapshots.clear()
        self._request_counts.clear()
        self._error_counts.clear()

    # ── queries ──────────────────────────────────────────

    @property
    def metrics(self) -> list[RequestMetric]:
        """Point-in-time copy of the request buffer, oldest first."""
        return list(self._metrics)

    @property
    def snapshots(self) -> list[SystemSnapshot]:
        return list(self._snapshots)

    @property
    def latest_snapshot(self) -> SystemSnapshot | None:
        return self._snapshots[-1] if self._snapshots else None

    def get_metrics(
        self,
        time_range: float = 3600.0,
        now: datetime | None = None,
    ) -> list[RequestMetric]:
        """Buffered metrics newer than ``time_range`` seconds."""
        if now is None:
            now = datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=time_range)
        return [m for m in self._metrics if m.timestamp > cutoff]

    def get_system_metrics(self) -> list[SystemSnapshot]:
        return list(self._snapshots)

    def get_top_slow_endpoints(self, limit: int = 10) -> list[EndpointStats]:
        times: dict[str, list[int]] = defaultdict(list)
        for m in self._metrics:
            times[m.endpoint].append(m.response_time_ms)
        stats = [
            EndpointStats(endpoint=ep, average_time_ms=sum(t) / len(t), count=len(t))
            for ep, t in times.items()
        ]
        stats.sort(key=lambda s: s.average_time_ms, reverse=True)
        return stats[:limit]

    def get_error_rates(self) -> list[EndpointErrorRate]:
        """Per-endpoint error rate over every request since startup."""
        rates = [
            EndpointErrorRate(
                endpoint=ep,
                error_rate=self._error_counts.get(ep, 0) * 100 / total,
                total_requests=total,
            )
            for ep, total in self._request_counts.items()
        ]
        rates.sort(key=lambda r: r.error_rate, reverse=True)
        return rates

    def health_status(self) -> HealthVerdict:
        return classify_health(self.latest_snapshot, self.thresholds)
