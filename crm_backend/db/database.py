from __future__ import annotations

import json
from pathlib import Path

import aiosqlite

from crm_backend.config import settings
from crm_backend.models import AIFeedback, SystemEvent

_SCHEMA_PATH = Path(__file__).with_name("schema.sql")


async def init_db() -> None:
    """Create tables if they don't exist."""
    Path(settings.db_path).parent.mkdir(parents=True, exist_ok=True)
    schema = _SCHEMA_PATH.read_text()
    async with aiosqlite.connect(settings.db_path) as db:
        await db.execute("PRAGMA journal_mode=WAL")
        await db.executescript(schema)
        await db.commit()


# ── system events ───────────────────────────────────────

async def insert_system_event(event: SystemEvent) -> None:
    async with aiosqlite.connect(settings.db_path) as db:
        await db.execute(
            """INSERT INTO system_events
               (id, level, message, endpoint, method, status_code, response_time, metadata, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                event.id,
                event.level.value,
                event.message,
                event.endpoint,
                event.method,
                event.status_code,
                event.response_time,
                json.dumps(event.metadata, default=str),
                event.created_at.isoformat(),
            ),
        )
        await db.commit()


async def get_system_events(
    level: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[dict]:
    query = "SELECT * FROM system_events"
    params: list = []
    if level:
        query += " WHERE level = ?"
        params.append(level)
    query += " ORDER BY created_at DESC LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    async with aiosqlite.connect(settings.db_path) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(query, params)
        rows = await cursor.fetchall()
        return [_row_to_dict(r) for r in rows]


# ── AI feedback ─────────────────────────────────────────

async def insert_feedback(feedback: AIFeedback) -> None:
    async with aiosqlite.connect(settings.db_path) as db:
        await db.execute(
            """INSERT INTO ai_feedback
               (id, content_type, content_id, rating, comment, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                feedback.id,
                feedback.content_type,
                feedback.content_id,
                int(feedback.rating),
                feedback.comment,
                feedback.created_at.isoformat(),
            ),
        )
        await db.commit()


async def get_feedback(
    content_type: str | None = None,
    limit: int = 50,
) -> list[dict]:
    query = "SELECT * FROM ai_feedback"
    params: list = []
    if content_type:
        query += " WHERE content_type = ?"
        params.append(content_type)
    query += " ORDER BY created_at DESC LIMIT ?"
    params.append(limit)

    async with aiosqlite.connect(settings.db_path) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(query, params)
        rows = await cursor.fetchall()
        return [_row_to_dict(r) for r in rows]


# ── helpers ─────────────────────────────────────────────

def _row_to_dict(row: aiosqlite.Row) -> dict:
    d = dict(row)
    if "metadata" in d and isinstance(d["metadata"], str):
        d["metadata"] = json.loads(d["metadata"])
    if "rating" in d:
        d["rating"] = bool(d["rating"])
    return d
