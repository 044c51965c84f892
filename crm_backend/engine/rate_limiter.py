from __future__ import annotations

import logging
import math
import time

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import MemoryStorage, Storage
from limits.strategies import FixedWindowRateLimiter

from crm_backend.config import Settings, settings
from crm_backend.models.rate_limit import RateLimitDecision, RateLimitPolicy

logger = logging.getLogger(__name__)

GENERAL_MESSAGE = "Too many requests from this IP, please try again later"
AI_MESSAGE = "Too many AI requests, please wait before trying again"
AUTH_MESSAGE = "Too many authentication attempts, please try again later"

DEFAULT_POLICIES: dict[str, RateLimitPolicy] = {
    "general": RateLimitPolicy(
        name="general", window_ms=15 * 60 * 1000, max_requests=100, message=GENERAL_MESSAGE
    ),
    "ai": RateLimitPolicy(
        name="ai", window_ms=60 * 1000, max_requests=10, message=AI_MESSAGE
    ),
    "auth": RateLimitPolicy(
        name="auth", window_ms=15 * 60 * 1000, max_requests=5, message=AUTH_MESSAGE
    ),
}


def policy_item(policy: RateLimitPolicy) -> RateLimitItem:
    """``limits`` windows are whole seconds; sub-second windows round up to one."""
    seconds = max(1, math.ceil(policy.window_ms / 1000))
    return RateLimitItemPerSecond(policy.max_requests, seconds, namespace="CRM")


class RateLimiter:
    """One named policy enforced per client key on a ``limits`` fixed window.

    A client's window opens on its first request and its counter drops back
    to zero once the window has elapsed. Several limiters can share one
    storage; keys are namespaced by policy name.
    """

    def __init__(self, policy: RateLimitPolicy, storage: Storage | None = None) -> None:
        self.policy = policy
        self.item = policy_item(policy)
        self.storage = storage if storage is not None else MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self.storage)

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request from ``key`` and decide whether it may proceed."""
        allowed = self._strategy.hit(self.item, self.policy.name, key)
        stats = self._strategy.get_window_stats(self.item, self.policy.name, key)
        if not allowed:
            logger.debug("Rate limiter [%s] rejected %s", self.policy.name, key)
        return RateLimitDecision(
            allowed=allowed,
            limit=self.item.amount,
            remaining=stats.remaining,
            reset_after=max(0.0, stats.reset_time - time.time()),
        )

    def count(self, key: str) -> int:
        """Requests seen from ``key`` in its current window (0 if expired)."""
        return self.storage.get(self.item.key_for(self.policy.name, key))

    def reset(self, key: str | None = None) -> None:
        """Forget ``key``, or every counter in the storage when no key is given."""
        if key is None:
            self.storage.reset()
        else:
            self._strategy.clear(self.item, self.policy.name, key)


def create_rate_limit(
    window_ms: int,
    max_requests: int,
    message: str,
    name: str = "custom",
    storage: Storage | None = None,
) -> RateLimiter:
    policy = RateLimitPolicy(
        name=name, window_ms=window_ms, max_requests=max_requests, message=message
    )
    return RateLimiter(policy, storage=storage)


def build_rate_limiters(
    cfg: Settings = settings,
    storage: Storage | None = None,
) -> dict[str, RateLimiter]:
    """The three named policies every route definition relies on, on one storage."""
    if storage is None:
        storage = MemoryStorage()
    return {
        "general": create_rate_limit(
            cfg.general_window_ms, cfg.general_max_requests, GENERAL_MESSAGE, "general", storage
        ),
        "ai": create_rate_limit(
            cfg.ai_window_ms, cfg.ai_max_requests, AI_MESSAGE, "ai", storage
        ),
        "auth": create_rate_limit(
            cfg.auth_window_ms, cfg.auth_max_requests, AUTH_MESSAGE, "auth", storage
        ),
    }
