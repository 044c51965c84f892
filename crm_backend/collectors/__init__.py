from .base import BaseCollector
from .system_sampler import SystemSampler, read_cpu_seconds, read_memory, read_uptime, summarize

__all__ = [
    "BaseCollector",
    "SystemSampler",
    "read_cpu_seconds",
    "read_memory",
    "read_uptime",
    "summarize",
]
