from __future__ import annotations

import logging

from crm_backend.config import Settings, settings
from crm_backend.engine.event_bus import EventBus
from crm_backend.models import EventLevel, RequestMetric, SystemEvent

logger = logging.getLogger(__name__)


class RequestLogger:
    """Writes the per-request log line and escalates slow or failing requests.

    Escalations go onto the EventBus so persisting them never delays the
    response that triggered them.
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        slow_request_ms: int = 1000,
        alert_request_ms: int = 5000,
    ) -> None:
        self.event_bus = event_bus
        self.slow_request_ms = slow_request_ms
        self.alert_request_ms = alert_request_ms

    @classmethod
    def from_settings(cls, event_bus: EventBus | None, cfg: Settings = settings) -> RequestLogger:
        return cls(
            event_bus=event_bus,
            slow_request_ms=cfg.slow_request_ms,
            alert_request_ms=cfg.alert_request_ms,
        )

    def observe(self, metric: RequestMetric) -> list[SystemEvent]:
        """Log ``metric`` and return the system events it produced."""
        if metric.path.startswith("/api"):
            logger.info(
                "%s %s %d in %dms",
                metric.method, metric.path, metric.status_code, metric.response_time_ms,
            )

        if metric.status_code >= 400 or metric.response_time_ms > self.alert_request_ms:
            logger.warning(
                "Security alert: %s %s -> %d in %dms (ip=%s, ua=%s)",
                metric.method,
                metric.path,
                metric.status_code,
                metric.response_time_ms,
                metric.client_ip,
                metric.user_agent,
            )

        events: list[SystemEvent] = []
        if metric.response_time_ms > self.slow_request_ms:
            logger.warning(
                "SLOW REQUEST: %s %s took %dms", metric.method, metric.path, metric.response_time_ms
            )
            events.append(
                SystemEvent(
                    level=EventLevel.WARN,
                    message=f"Slow request detected: {metric.method} {metric.path}",
                    endpoint=metric.path,
                    method=metric.method,
                    status_code=metric.status_code,
                    response_time=metric.response_time_ms,
                    metadata={
                        "threshold": self.slow_request_ms,
                        "actual": metric.response_time_ms,
                        "request_id": metric.request_id,
                    },
                )
            )
        if metric.status_code >= 500:
            events.append(
                SystemEvent(
                    level=EventLevel.ERROR,
                    message=f"{metric.method} {metric.path}",
                    endpoint=metric.path,
                    method=metric.method,
                    status_code=metric.status_code,
                    response_time=metric.response_time_ms,
                    metadata={
                        "request_id": metric.request_id,
                        "user_agent": metric.user_agent,
                        "ip": metric.client_ip,
                    },
                )
            )

        if self.event_bus is not None:
            for event in events:
                self.event_bus.emit(event)
        return events
