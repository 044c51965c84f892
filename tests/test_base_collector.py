from __future__ import annotations

import asyncio

import pytest

from crm_backend.collectors.base import BaseCollector


class StubCollector(BaseCollector):
    """Collector that counts its cycles."""

    name = "stub"

    def __init__(self, interval: float = 0.1) -> None:
        super().__init__(interval=interval)
        self.collect_count = 0

    async def collect(self) -> None:
        self.collect_count += 1


class ErrorCollector(BaseCollector):
    """Collector that raises on every collect call."""

    name = "error"

    def __init__(self, interval: float = 0.1) -> None:
        super().__init__(interval=interval)
        self.attempts = 0

    async def collect(self) -> None:
        self.attempts += 1
        raise RuntimeError("collect failed")


# ── basic lifecycle ─────────────────────────────────────


@pytest.mark.asyncio
async def test_collector_runs_every_interval():
    collector = StubCollector(interval=0.1)
    await collector.start()

    await asyncio.sleep(0.35)  # should get ~3 cycles
    await collector.stop()

    assert collector.collect_count >= 2


@pytest.mark.asyncio
async def test_first_collect_waits_one_interval():
    """Nothing is collected at start(); the first cycle comes after the interval."""
    collector = StubCollector(interval=0.2)
    await collector.start()
    await asyncio.sleep(0.05)
    assert collector.collect_count == 0

    await asyncio.sleep(0.25)
    await collector.stop()
    assert collector.collect_count >= 1


@pytest.mark.asyncio
async def test_collector_start_stop_idempotent():
    collector = StubCollector()

    await collector.start()
    await collector.start()  # double start
    assert collector.running is True

    await collector.stop()
    await collector.stop()  # double stop
    assert collector.running is False


@pytest.mark.asyncio
async def test_collector_stop_is_graceful():
    """Stop cancels the loop without raising."""
    collector = StubCollector(interval=0.05)

    await collector.start()
    await asyncio.sleep(0.15)
    await collector.stop()

    assert collector.running is False
    assert collector._task is None
    assert collector.collect_count >= 1


# ── error resilience ────────────────────────────────────


@pytest.mark.asyncio
async def test_collector_survives_collect_error():
    """A failing collect() doesn't kill the collector loop."""
    collector = ErrorCollector(interval=0.05)

    await collector.start()
    await asyncio.sleep(0.2)
    await collector.stop()

    assert collector.running is False
    assert collector.attempts >= 2


# ── custom interval ─────────────────────────────────────


def test_custom_interval_override():
    collector = StubCollector(interval=99.0)
    assert collector.interval == 99.0


def test_default_interval():
    class Plain(BaseCollector):
        async def collect(self) -> None:
            pass

    assert Plain().interval == 60.0
