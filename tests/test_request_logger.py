"""Tests for crm_backend.engine.request_logger."""

from __future__ import annotations

import logging

import pytest

from crm_backend.config import Settings
from crm_backend.engine.event_bus import EventBus
from crm_backend.engine.request_logger import RequestLogger
from crm_backend.models import EventLevel, RequestMetric


def _metric(status: int = 200, ms: int = 20, path: str = "/api/clients") -> RequestMetric:
    return RequestMetric(
        request_id="1717243200000-abc123xyz",
        method="GET",
        path=path,
        status_code=status,
        response_time_ms=ms,
        client_ip="10.0.0.7",
        user_agent="pytest",
    )


class TestObserve:
    def test_fast_success_produces_no_events(self, caplog):
        caplog.set_level(logging.INFO, logger="crm_backend.engine.request_logger")
        events = RequestLogger().observe(_metric())
        assert events == []
        assert "GET /api/clients 200 in 20ms" in caplog.text

    def test_non_api_paths_are_not_logged(self, caplog):
        caplog.set_level(logging.INFO, logger="crm_backend.engine.request_logger")
        RequestLogger().observe(_metric(path="/assets/app.js"))
        assert caplog.records == []

    def test_slow_request_becomes_warn_event(self, caplog):
        caplog.set_level(logging.WARNING, logger="crm_backend.engine.request_logger")
        events = RequestLogger(slow_request_ms=1000).observe(_metric(ms=1500))

        assert len(events) == 1
        event = events[0]
        assert event.level == EventLevel.WARN
        assert event.message == "Slow request detected: GET /api/clients"
        assert event.metadata == {
            "threshold": 1000,
            "actual": 1500,
            "request_id": "1717243200000-abc123xyz",
        }
        assert "SLOW REQUEST" in caplog.text

    def test_threshold_is_exclusive(self):
        assert RequestLogger(slow_request_ms=1000).observe(_metric(ms=1000)) == []

    def test_server_error_becomes_error_event(self):
        events = RequestLogger().observe(_metric(status=503))
        assert [e.level for e in events] == [EventLevel.ERROR]
        assert events[0].status_code == 503
        assert events[0].metadata["ip"] == "10.0.0.7"

    def test_slow_server_error_produces_both(self):
        events = RequestLogger().observe(_metric(status=500, ms=2000))
        assert [e.level for e in events] == [EventLevel.WARN, EventLevel.ERROR]

    @pytest.mark.parametrize("status, ms", [(404, 10), (429, 10), (200, 6000)])
    def test_security_alert_logged(self, caplog, status, ms):
        caplog.set_level(logging.WARNING, logger="crm_backend.engine.request_logger")
        RequestLogger().observe(_metric(status=status, ms=ms))
        assert "Security alert" in caplog.text

    def test_client_errors_are_not_persisted(self):
        assert RequestLogger().observe(_metric(status=404)) == []


class TestPublishing:
    def test_events_are_queued_on_the_bus(self):
        bus = EventBus()
        RequestLogger(event_bus=bus).observe(_metric(status=500, ms=2000))
        assert bus.pending == 2

    def test_full_bus_does_not_raise(self):
        bus = EventBus(maxsize=1)
        RequestLogger(event_bus=bus).observe(_metric(status=500, ms=2000))
        assert bus.pending == 1
        assert bus.dropped == 1

    def test_from_settings(self):
        bus = EventBus()
        rl = RequestLogger.from_settings(bus, Settings(slow_request_ms=250, alert_request_ms=900))
        assert rl.event_bus is bus
        assert rl.slow_request_ms == 250
        assert rl.alert_request_ms == 900
