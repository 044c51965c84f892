from .event_bus import EventBus
from .health import classify_health, classify_values
from .monitor import PerformanceMonitor
from .patterns import PatternMatcher, PatternVerdict
from .rate_limiter import DEFAULT_POLICIES, RateLimiter, build_rate_limiters, create_rate_limit
from .request_logger import RequestLogger
from .sanitizer import sanitize_input, sanitize_value
from .system_event_store import SystemEventStore
from .validation_gate import ValidationGate

__all__ = [
    "EventBus",
    "classify_health",
    "classify_values",
    "PerformanceMonitor",
    "PatternMatcher",
    "PatternVerdict",
    "DEFAULT_POLICIES",
    "RateLimiter",
    "build_rate_limiters",
    "create_rate_limit",
    "RequestLogger",
    "sanitize_input",
    "sanitize_value",
    "SystemEventStore",
    "ValidationGate",
]
