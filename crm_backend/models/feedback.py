from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field


class AIFeedback(BaseModel):
    """Thumbs up/down on a piece of AI-generated content."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    content_type: str
    content_id: str
    rating: bool
    comment: str | None = None
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
