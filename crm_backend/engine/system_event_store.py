from __future__ import annotations

import logging

from crm_backend.db import database as db
from crm_backend.models import SystemEvent

logger = logging.getLogger(__name__)


class SystemEventStore:
    """EventBus subscriber that persists diagnostic events."""

    def __init__(self) -> None:
        self.stored = 0

    async def handle_event(self, event: SystemEvent) -> None:
        await db.insert_system_event(event)
        self.stored += 1
        logger.debug("Stored system event %s (%s)", event.id, event.level)
