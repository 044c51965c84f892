from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimitPolicy(BaseModel):
    name: str
    window_ms: int = Field(gt=0)
    max_requests: int = Field(gt=0)
    message: str

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


class RateLimitDecision(BaseModel):
    allowed: bool
    limit: int
    remaining: int
    reset_after: float  # seconds until the current window closes
