from __future__ import annotations

import logging

import aiosqlite
from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect

from crm_backend.api.dependencies import (
    SanitizedQuery,
    get_monitor,
    rate_limit,
    validate_body,
    validate_query,
)
from crm_backend.api.errors import DatabaseError
from crm_backend.api.schemas import FeedbackRequest, PromptRequest, SearchRequest
from crm_backend.db import database as db
from crm_backend.engine import PerformanceMonitor
from crm_backend.engine.patterns import default_matcher
from crm_backend.models import AIFeedback, HealthVerdict, RateLimitDecision, SystemSnapshot

logger = logging.getLogger(__name__)

router = APIRouter()


# ── WebSocket connection manager ──────────────────────


class ConnectionManager:
    """Tracks active WebSocket clients and broadcasts messages."""

    def __init__(self) -> None:
        self.active_connections: list[WebSocket] = []

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, data: dict) -> None:
        dead: list[WebSocket] = []
        for ws in self.active_connections:
            try:
                await ws.send_json(data)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)


ws_manager = ConnectionManager()


async def broadcast_snapshot(snapshot: SystemSnapshot, verdict: HealthVerdict) -> None:
    """PerformanceMonitor listener: push each new snapshot to dashboard clients."""
    await ws_manager.broadcast(
        {
            "type": "snapshot",
            "snapshot": snapshot.model_dump(mode="json"),
            "health": verdict.model_dump(mode="json", by_alias=True, exclude_none=True),
        }
    )


# ── health & telemetry ────────────────────────────────


@router.get("/api/health")
async def get_health(monitor: PerformanceMonitor = Depends(get_monitor)) -> dict:
    return monitor.health_status().model_dump(mode="json", by_alias=True, exclude_none=True)


@router.get("/api/status")
async def get_status(request: Request) -> dict:
    state = request.app.state
    monitor: PerformanceMonitor = state.monitor
    event_bus = getattr(state, "event_bus", None)
    return {
        "status": "running",
        "sampler_running": monitor.running,
        "buffered_requests": len(monitor.metrics),
        "snapshots": len(monitor.snapshots),
        "active_requests": monitor.active_requests,
        "event_bus_running": event_bus.running if event_bus else False,
        "pending_events": event_bus.pending if event_bus else 0,
        "rate_limit_policies": sorted(state.rate_limiters),
    }


@router.get("/api/performance/metrics")
async def get_request_metrics(
    minutes: int = Query(60, ge=1, le=1440),
    monitor: PerformanceMonitor = Depends(get_monitor),
) -> list[dict]:
    return [m.model_dump(mode="json") for m in monitor.get_metrics(time_range=minutes * 60)]


@router.get("/api/performance/system")
async def get_system_metrics(monitor: PerformanceMonitor = Depends(get_monitor)) -> list[dict]:
    return [s.model_dump(mode="json") for s in monitor.get_system_metrics()]


@router.get("/api/performance/slow-endpoints")
async def get_slow_endpoints(
    limit: int = Query(10, ge=1, le=100),
    monitor: PerformanceMonitor = Depends(get_monitor),
) -> list[dict]:
    return [s.model_dump() for s in monitor.get_top_slow_endpoints(limit)]


@router.get("/api/performance/error-rates")
async def get_error_rates(monitor: PerformanceMonitor = Depends(get_monitor)) -> list[dict]:
    return [r.model_dump() for r in monitor.get_error_rates()]


@router.get("/api/system-events")
async def get_system_events(
    level: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> list[dict]:
    try:
        return await db.get_system_events(level=level, limit=limit, offset=offset)
    except aiosqlite.Error as exc:
        raise DatabaseError("Failed to load system events", exc) from exc


# ── AI feedback ───────────────────────────────────────


@router.post("/api/feedback", status_code=201)
async def create_feedback(
    payload: FeedbackRequest = Depends(validate_body(FeedbackRequest)),
) -> dict:
    feedback = AIFeedback(
        content_type=payload.content_type,
        content_id=payload.content_id,
        rating=payload.rating,
        comment=payload.comment,
    )
    try:
        await db.insert_feedback(feedback)
    except aiosqlite.Error as exc:
        raise DatabaseError("Failed to store feedback", exc) from exc
    return feedback.model_dump(mode="json")


@router.get("/api/feedback")
async def list_feedback(
    content_type: str | None = None,
    limit: int = Query(50, ge=1, le=500),
) -> list[dict]:
    try:
        return await db.get_feedback(content_type=content_type, limit=limit)
    except aiosqlite.Error as exc:
        raise DatabaseError("Failed to load feedback", exc) from exc


# ── security pre-flight ───────────────────────────────


@router.post("/api/security/check", dependencies=[Depends(rate_limit("ai"))])
async def check_prompt(
    request: Request,
    payload: PromptRequest = Depends(validate_body(PromptRequest)),
) -> dict:
    """Pre-flight for the AI tools: returns the sanitized prompt or a 400."""
    verdict = default_matcher().classify(payload.prompt)
    return {
        "accepted": True,
        "payload": request.state.validated_body,
        "verdict": verdict.model_dump(),
    }


@router.get("/api/search/check", dependencies=[Depends(validate_query(SearchRequest))])
async def check_search(request: Request, params: SanitizedQuery) -> dict:
    """Pre-flight for content search: the sanitized filters, plus any it would ignore."""
    accepted = request.state.validated_query
    return {
        "accepted": True,
        "query": accepted,
        "ignored": sorted(set(params) - set(accepted)),
    }


@router.post("/api/auth/precheck")
async def auth_precheck(decision: RateLimitDecision = Depends(rate_limit("auth"))) -> dict:
    """Throttle gate in front of the login handler."""
    return {"allowed": True, "remaining": decision.remaining}


# ── WebSocket endpoint ────────────────────────────────


@router.websocket("/ws/performance")
async def websocket_performance(websocket: WebSocket) -> None:
    await ws_manager.connect(websocket)
    try:
        while True:
            # Keep connection alive; client can send pings or messages
            await websocket.receive_text()
    except WebSocketDisconnect:
        ws_manager.disconnect(websocket)
