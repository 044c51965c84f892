from .metrics import (
    UNMATCHED_ROUTE,
    EndpointErrorRate,
    EndpointStats,
    MemorySnapshot,
    RequestMetric,
    SystemSnapshot,
)
from .health import HealthDetails, HealthStatus, HealthThresholds, HealthVerdict
from .validation import FieldViolation, ValidationOutcome
from .rate_limit import RateLimitDecision, RateLimitPolicy
from .system_event import EventLevel, SystemEvent
from .feedback import AIFeedback

__all__ = [
    "UNMATCHED_ROUTE",
    "EndpointErrorRate",
    "EndpointStats",
    "MemorySnapshot",
    "RequestMetric",
    "SystemSnapshot",
    "HealthDetails",
    "HealthStatus",
    "HealthThresholds",
    "HealthVerdict",
    "FieldViolation",
    "ValidationOutcome",
    "RateLimitDecision",
    "RateLimitPolicy",
    "EventLevel",
    "SystemEvent",
    "AIFeedback",
]
