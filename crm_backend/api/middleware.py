from __future__ import annotations

import json
import logging
import math
import time
from urllib.parse import parse_qsl, urlencode

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.datastructures import MutableHeaders
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from crm_backend.config import settings
from crm_backend.engine.sanitizer import sanitize_input, sanitize_value
from crm_backend.models import RateLimitDecision, RequestMetric

logger = logging.getLogger(__name__)

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "script-src 'self' 'unsafe-inline' 'unsafe-eval'",
        "style-src 'self' 'unsafe-inline'",
        "img-src 'self' data: https:",
        "font-src 'self' data:",
        "connect-src 'self' https:",
        "frame-ancestors 'none'",
        "base-uri 'self'",
        "form-action 'self'",
    ]
)


# ── helpers ─────────────────────────────────────────────


def client_ip_from_scope(scope: Scope, trust_proxy: bool | None = None) -> str:
    if trust_proxy is None:
        trust_proxy = settings.trust_proxy
    if trust_proxy:
        for name, value in scope.get("headers", []):
            if name == b"x-forwarded-for":
                first = value.decode("latin-1").split(",")[0].strip()
                if first:
                    return first
    client = scope.get("client")
    return client[0] if client else "unknown"


def client_ip(request: Request) -> str:
    return client_ip_from_scope(request.scope)


def rate_limit_headers(decision: RateLimitDecision, retry: bool = False) -> dict[str, str]:
    reset = str(math.ceil(decision.reset_after))
    headers = {
        "RateLimit-Limit": str(decision.limit),
        "RateLimit-Remaining": str(decision.remaining),
        "RateLimit-Reset": reset,
    }
    if retry:
        headers["Retry-After"] = reset
    return headers


def _header(scope: Scope, name: bytes) -> str | None:
    for key, value in scope.get("headers", []):
        if key == name:
            return value.decode("latin-1")
    return None


# ── metrics ─────────────────────────────────────────────


class MetricsMiddleware:
    """Outermost layer: records one RequestMetric per HTTP request.

    The metric is taken when the last body chunk has been handed to the
    server, so recording never sits between the handler and the client.
    Requests that blow up before a response starts are recorded as 500s.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope["app"].state
        monitor = state.monitor
        request_logger = getattr(state, "request_logger", None)

        request_id = monitor.new_request_id()
        scope.setdefault("state", {})["request_id"] = request_id
        start = time.perf_counter()
        status_code = 500
        started = False
        recorded = False
        monitor.request_started()

        def finish() -> None:
            nonlocal recorded
            if recorded:
                return
            recorded = True
            monitor.request_finished()
            route = scope.get("route")
            metric = RequestMetric(
                request_id=request_id,
                method=scope["method"],
                path=scope["path"],
                route=getattr(route, "path", None),
                status_code=status_code,
                response_time_ms=max(0, round((time.perf_counter() - start) * 1000)),
                memory=monitor.memory_probe(),
                client_ip=client_ip_from_scope(scope),
                user_agent=_header(scope, b"user-agent"),
            )
            monitor.record(metric)
            if request_logger is not None:
                request_logger.observe(metric)

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code, started
            if message["type"] == "http.response.start":
                started = True
                status_code = message["status"]
                MutableHeaders(scope=message).append("X-Request-ID", request_id)
            await send(message)
            if message["type"] == "http.response.body" and not message.get("more_body", False):
                finish()

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            if not started:
                status_code = 500
            raise
        finally:
            finish()


# ── security headers ────────────────────────────────────


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        headers = response.headers
        headers["Content-Security-Policy"] = CONTENT_SECURITY_POLICY
        headers["X-Content-Type-Options"] = "nosniff"
        headers["X-Frame-Options"] = "DENY"
        headers["X-XSS-Protection"] = "1; mode=block"
        headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

        # Prevent caching of API responses
        if request.url.path.startswith("/api/"):
            headers["Cache-Control"] = "no-store, no-cache, must-revalidate, proxy-revalidate"
            headers["Pragma"] = "no-cache"
            headers["Expires"] = "0"
        return response


# ── request size ────────────────────────────────────────


def _too_large() -> JSONResponse:
    return JSONResponse(status_code=413, content={"error": "Request payload too large"})


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests whose declared Content-Length exceeds the limit."""

    def __init__(self, app: ASGIApp, max_body_bytes: int = 10 * 1024 * 1024) -> None:
        super().__init__(app)
        self.max_body_bytes = max_body_bytes

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_body_bytes:
            logger.warning(
                "Rejected %s %s: %s bytes over limit", request.method, request.url.path, declared
            )
            return _too_large()
        return await call_next(request)


# ── general API rate limit ──────────────────────────────


class ApiRateLimitMiddleware(BaseHTTPMiddleware):
    """Applies the ``general`` policy to every ``/api/`` request."""

    def __init__(self, app: ASGIApp, policy: str = "general", prefix: str = "/api/") -> None:
        super().__init__(app)
        self.policy = policy
        self.prefix = prefix

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not request.url.path.startswith(self.prefix):
            return await call_next(request)

        limiter = request.app.state.rate_limiters[self.policy]
        ip = client_ip(request)
        decision = limiter.hit(ip)
        if not decision.allowed:
            logger.warning(
                "Rate limit [%s] exceeded by %s on %s %s",
                self.policy, ip, request.method, request.url.path,
            )
            return JSONResponse(
                status_code=429,
                content={"error": limiter.policy.message},
                headers=rate_limit_headers(decision, retry=True),
            )

        response = await call_next(request)
        # a stricter route-level policy may already have set these
        for name, value in rate_limit_headers(decision).items():
            response.headers.setdefault(name, value)
        return response


# ── input sanitization ──────────────────────────────────


class SanitizeInputMiddleware:
    """Sanitizes every query string and JSON body before routing.

    Runs regardless of whether the route validates its input; the
    validation gate sanitizes again, which is a no-op on clean input.
    Bodies are also capped here, which covers chunked uploads that carry
    no Content-Length.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int = 10 * 1024 * 1024) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        query = scope.get("query_string", b"")
        if query:
            pairs = parse_qsl(query.decode("latin-1"), keep_blank_values=True)
            scope["query_string"] = urlencode(
                [(key, sanitize_input(value)) for key, value in pairs]
            ).encode("latin-1")

        content_type = _header(scope, b"content-type") or ""
        if not content_type.startswith("application/json"):
            await self.app(scope, receive, send)
            return

        chunks: list[bytes] = []
        size = 0
        while True:
            message = await receive()
            if message["type"] != "http.request":
                # client went away mid-body; let the app see the disconnect
                await self.app(scope, _replay(message, receive), send)
                return
            chunk = message.get("body", b"")
            size += len(chunk)
            if size > self.max_body_bytes:
                await _too_large()(scope, receive, send)
                return
            chunks.append(chunk)
            if not message.get("more_body", False):
                break

        body = b"".join(chunks)
        try:
            payload = json.loads(body) if body.strip() else None
        except ValueError:
            payload = None
        if payload is not None:
            body = json.dumps(sanitize_value(payload)).encode("utf-8")
            headers = [(k, v) for k, v in scope["headers"] if k != b"content-length"]
            headers.append((b"content-length", str(len(body)).encode("latin-1")))
            scope["headers"] = headers

        await self.app(
            scope,
            _replay({"type": "http.request", "body": body, "more_body": False}, receive),
            send,
        )


def _replay(first: Message, receive: Receive) -> Receive:
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return first
        return await receive()

    return replay
