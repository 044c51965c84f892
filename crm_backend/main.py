from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crm_backend.api.errors import register_exception_handlers
from crm_backend.api.middleware import (
    ApiRateLimitMiddleware,
    MetricsMiddleware,
    RequestSizeLimitMiddleware,
    SanitizeInputMiddleware,
    SecurityHeadersMiddleware,
)
from crm_backend.api.routes import broadcast_snapshot, router
from crm_backend.config import settings
from crm_backend.db import database as db
from crm_backend.engine import (
    EventBus,
    PerformanceMonitor,
    RequestLogger,
    SystemEventStore,
    build_rate_limiters,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── startup ───────────────────────────────────────
    await db.init_db()

    event_bus = EventBus()
    event_store = SystemEventStore()
    event_bus.subscribe(event_store.handle_event)
    await event_bus.start()

    monitor = PerformanceMonitor.from_settings(settings)
    monitor.add_listener(broadcast_snapshot)
    await monitor.start()

    # Store on app.state for middleware and route access
    app.state.event_bus = event_bus
    app.state.event_store = event_store
    app.state.monitor = monitor
    app.state.request_logger = RequestLogger.from_settings(event_bus, settings)
    app.state.rate_limiters = build_rate_limiters(settings)

    logger.info(
        "CRM backend started (%s), sampling every %.0fs",
        settings.environment,
        settings.sample_interval,
    )

    yield

    # ── shutdown ──────────────────────────────────────
    await monitor.stop()
    await event_bus.stop()
    logger.info("CRM backend shut down")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

register_exception_handlers(app)

# add_middleware prepends, so the last one added is the outermost layer
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SanitizeInputMiddleware, max_body_bytes=settings.max_body_bytes)
app.add_middleware(ApiRateLimitMiddleware, policy="general")
app.add_middleware(RequestSizeLimitMiddleware, max_body_bytes=settings.max_body_bytes)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(MetricsMiddleware)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=settings.host, port=settings.port)
