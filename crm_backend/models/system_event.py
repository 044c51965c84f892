from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, Field


class EventLevel(StrEnum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    DEBUG = "debug"


class SystemEvent(BaseModel):
    """Diagnostic event worth keeping past the in-memory buffers (5xx, slow requests)."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    level: EventLevel
    message: str
    endpoint: str | None = None
    method: str | None = None
    status_code: int | None = None
    response_time: float | None = None
    metadata: dict = Field(default_factory=dict)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
