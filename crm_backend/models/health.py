from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class HealthThresholds(BaseModel):
    """Limits are exclusive: a value must exceed them to trip the level."""

    critical_response_time_ms: float = 5000.0
    critical_memory_percent: float = 90.0
    critical_error_rate: float = 10.0
    warning_response_time_ms: float = 2000.0
    warning_memory_percent: float = 70.0
    warning_error_rate: float = 5.0


class HealthDetails(BaseModel):
    """Serialized with camelCase keys: avgResponseTime, memoryUsagePercent, errorRate."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    avg_response_time: float
    memory_usage_percent: float
    error_rate: float


class HealthVerdict(BaseModel):
    status: HealthStatus
    message: str
    details: HealthDetails | None = None
