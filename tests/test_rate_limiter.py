"""Tests for crm_backend.engine.rate_limiter."""

from __future__ import annotations

import time

import pytest
from limits.storage import MemoryStorage

from crm_backend.config import Settings
from crm_backend.engine.rate_limiter import (
    AI_MESSAGE,
    AUTH_MESSAGE,
    DEFAULT_POLICIES,
    GENERAL_MESSAGE,
    RateLimiter,
    build_rate_limiters,
    create_rate_limit,
    policy_item,
)
from crm_backend.models import RateLimitPolicy


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    """Freeze wall-clock time, which the memory storage uses for window expiry."""
    fake = FakeClock()
    monkeypatch.setattr(time, "time", fake)
    return fake


@pytest.fixture
def limiter(clock: FakeClock) -> RateLimiter:
    return create_rate_limit(60_000, 10, "Slow down", name="test")


# ── fixed window ───────────────────────────────────────

class TestFixedWindow:
    def test_ten_allowed_eleventh_rejected(self, limiter: RateLimiter):
        decisions = [limiter.hit("1.2.3.4") for _ in range(10)]
        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == list(range(9, -1, -1))

        eleventh = limiter.hit("1.2.3.4")
        assert eleventh.allowed is False
        assert eleventh.remaining == 0
        assert eleventh.limit == 10
        assert limiter.policy.message == "Slow down"

    def test_window_elapses_and_counter_resets(self, limiter: RateLimiter, clock: FakeClock):
        for _ in range(11):
            limiter.hit("1.2.3.4")
        clock.advance(59.5)
        assert limiter.hit("1.2.3.4").allowed is False

        clock.advance(0.5)  # exactly at the boundary
        decision = limiter.hit("1.2.3.4")
        assert decision.allowed is True
        assert decision.remaining == 9
        assert limiter.count("1.2.3.4") == 1

    def test_window_is_not_sliding(self, limiter: RateLimiter, clock: FakeClock):
        limiter.hit("ip")
        clock.advance(30)
        for _ in range(9):
            limiter.hit("ip")
        clock.advance(30)
        # 60s after the first hit the whole window resets, not just the first hit
        assert limiter.hit("ip").remaining == 9

    def test_counter_monotonic_within_window(self, limiter: RateLimiter, clock: FakeClock):
        counts = []
        for _ in range(15):
            limiter.hit("ip")
            counts.append(limiter.count("ip"))
            clock.advance(1)
        assert counts == sorted(counts)
        assert counts[-1] == 15

    def test_clients_are_independent(self, limiter: RateLimiter):
        for _ in range(10):
            limiter.hit("a")
        assert limiter.hit("a").allowed is False
        assert limiter.hit("b").allowed is True

    def test_reset_after_counts_down(self, limiter: RateLimiter, clock: FakeClock):
        assert limiter.hit("ip").reset_after == pytest.approx(60.0)
        clock.advance(20)
        assert limiter.hit("ip").reset_after == pytest.approx(40.0)


# ── housekeeping ───────────────────────────────────────

class TestHousekeeping:
    def test_count_of_unknown_key_is_zero(self, limiter: RateLimiter):
        assert limiter.count("nobody") == 0

    def test_count_drops_to_zero_after_window(self, limiter: RateLimiter, clock: FakeClock):
        limiter.hit("ip")
        clock.advance(61)
        assert limiter.count("ip") == 0

    def test_reset_single_key(self, limiter: RateLimiter):
        limiter.hit("a")
        limiter.hit("b")
        limiter.reset("a")
        assert limiter.count("a") == 0
        assert limiter.count("b") == 1

    def test_reset_all(self, limiter: RateLimiter):
        limiter.hit("a")
        limiter.hit("b")
        limiter.reset()
        assert limiter.count("a") == 0
        assert limiter.count("b") == 0


# ── policy items ───────────────────────────────────────

class TestPolicyItem:
    def test_window_maps_to_seconds(self):
        item = policy_item(DEFAULT_POLICIES["general"])
        assert item.amount == 100
        assert item.get_expiry() == 900

    def test_sub_second_window_rounds_up(self):
        policy = RateLimitPolicy(name="tiny", window_ms=250, max_requests=1, message="m")
        assert policy_item(policy).get_expiry() == 1


# ── factory ────────────────────────────────────────────

class TestFactory:
    def test_default_policies(self):
        assert DEFAULT_POLICIES["general"].window_ms == 900_000
        assert DEFAULT_POLICIES["general"].max_requests == 100
        assert DEFAULT_POLICIES["ai"].window_ms == 60_000
        assert DEFAULT_POLICIES["ai"].max_requests == 10
        assert DEFAULT_POLICIES["auth"].window_ms == 900_000
        assert DEFAULT_POLICIES["auth"].max_requests == 5

    def test_build_from_settings(self, clock: FakeClock):
        limiters = build_rate_limiters(Settings(ai_max_requests=2))
        assert set(limiters) == {"general", "ai", "auth"}
        assert limiters["general"].policy.message == GENERAL_MESSAGE
        assert limiters["ai"].policy.message == AI_MESSAGE
        assert limiters["auth"].policy.message == AUTH_MESSAGE

        ai = limiters["ai"]
        assert ai.hit("ip").allowed is True
        assert ai.hit("ip").allowed is True
        assert ai.hit("ip").allowed is False

    def test_policies_share_storage_but_not_counters(self, clock: FakeClock):
        storage = MemoryStorage()
        limiters = build_rate_limiters(Settings(), storage=storage)
        assert all(lim.storage is storage for lim in limiters.values())

        limiters["auth"].hit("ip")
        limiters["auth"].hit("ip")
        assert limiters["auth"].count("ip") == 2
        assert limiters["general"].count("ip") == 0

    def test_invalid_policy_rejected(self):
        with pytest.raises(ValueError):
            create_rate_limit(0, 10, "nope")
