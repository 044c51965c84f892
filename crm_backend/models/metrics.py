from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class MemorySnapshot(BaseModel):
    """Memory reading in bytes. ``used``/``total`` are system-wide, ``rss`` is this process."""

    model_config = ConfigDict(frozen=True)

    used: int = 0
    total: int = 0
    rss: int = 0

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.used * 100 / self.total


UNMATCHED_ROUTE = "<unmatched>"


class RequestMetric(BaseModel):
    """One completed request, captured by the metrics middleware."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    method: str
    path: str
    route: str | None = None  # matched route template, when routing got that far
    status_code: int
    response_time_ms: int = Field(ge=0)
    memory: MemorySnapshot = Field(default_factory=MemorySnapshot)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    client_ip: str | None = None
    user_agent: str | None = None

    @property
    def endpoint(self) -> str:
        """Stats key. Requests that never matched a route share one key."""
        return f"{self.method}:{self.route or UNMATCHED_ROUTE}"

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


class SystemSnapshot(BaseModel):
    """Rolling-window reduction of recent requests plus process readings."""

    model_config = ConfigDict(frozen=True)

    cpu_seconds: float = 0.0
    memory: MemorySnapshot = Field(default_factory=MemorySnapshot)
    uptime_seconds: float = 0.0
    active_connections: int = 0
    requests_per_minute: int = 0
    average_response_time_ms: float = 0.0
    error_rate_percent: float = 0.0
    taken_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class EndpointStats(BaseModel):
    endpoint: str
    average_time_ms: float
    count: int


class EndpointErrorRate(BaseModel):
    endpoint: str
    error_rate: float
    total_requests: int
