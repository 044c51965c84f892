from __future__ import annotations

from crm_backend.models import (
    HealthDetails,
    HealthStatus,
    HealthThresholds,
    HealthVerdict,
    SystemSnapshot,
)

DEFAULT_THRESHOLDS = HealthThresholds()


def classify_health(
    snapshot: SystemSnapshot | None,
    thresholds: HealthThresholds = DEFAULT_THRESHOLDS,
) -> HealthVerdict:
    """Map the latest snapshot to a health verdict. Critical is checked before warning."""
    if snapshot is None:
        return HealthVerdict(status=HealthStatus.UNKNOWN, message="No metrics available")

    details = HealthDetails(
        avg_response_time=snapshot.average_response_time_ms,
        memory_usage_percent=snapshot.memory.percent,
        error_rate=snapshot.error_rate_percent,
    )
    return classify_values(details, thresholds)


def classify_values(
    details: HealthDetails,
    thresholds: HealthThresholds = DEFAULT_THRESHOLDS,
) -> HealthVerdict:
    t = thresholds
    if (
        details.avg_response_time > t.critical_response_time_ms
        or details.memory_usage_percent > t.critical_memory_percent
        or details.error_rate > t.critical_error_rate
    ):
        return HealthVerdict(
            status=HealthStatus.CRITICAL,
            message="System performance is degraded",
            details=details,
        )

    if (
        details.avg_response_time > t.warning_response_time_ms
        or details.memory_usage_percent > t.warning_memory_percent
        or details.error_rate > t.warning_error_rate
    ):
        return HealthVerdict(
            status=HealthStatus.WARNING,
            message="System performance needs attention",
            details=details,
        )

    return HealthVerdict(
        status=HealthStatus.HEALTHY,
        message="System is operating normally",
        details=details,
    )
