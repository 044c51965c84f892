from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Awaitable, Callable, TypeVar

from fastapi import Depends, Request
from pydantic import BaseModel

from crm_backend.api.errors import InputRejected, RateLimitExceeded, SecurityPatternDetected
from crm_backend.api.middleware import client_ip, rate_limit_headers
from crm_backend.engine import PerformanceMonitor, RateLimiter, ValidationGate
from crm_backend.engine.sanitizer import sanitize_input
from crm_backend.engine.validation_gate import is_security_rejection
from crm_backend.models import FieldViolation, RateLimitDecision, ValidationOutcome

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

_gate = ValidationGate()


def get_monitor(request: Request) -> PerformanceMonitor:
    return request.app.state.monitor


def get_rate_limiter(request: Request, name: str) -> RateLimiter:
    return request.app.state.rate_limiters[name]


# ── rate limiting ───────────────────────────────────────


def rate_limit(policy: str) -> Callable[[Request], Awaitable[RateLimitDecision]]:
    """Route dependency enforcing one of the named policies (``ai``, ``auth``, ...)."""

    async def dependency(request: Request) -> RateLimitDecision:
        limiter = get_rate_limiter(request, policy)
        ip = client_ip(request)
        decision = limiter.hit(ip)
        if not decision.allowed:
            raise RateLimitExceeded(
                limiter.policy.message,
                headers=rate_limit_headers(decision, retry=True),
            )
        return decision

    return dependency


# ── validation gate ─────────────────────────────────────


def _raise_rejected(request: Request, outcome: ValidationOutcome) -> None:
    logger.info(
        "Rejected input on %s %s from %s: %s",
        request.method,
        request.url.path,
        client_ip(request),
        ", ".join(v.field for v in outcome.violations),
    )
    if is_security_rejection(outcome.violations):
        raise SecurityPatternDetected(outcome.violations)
    raise InputRejected(outcome.violations)


def validate_body(schema: type[SchemaT]) -> Callable[[Request], Awaitable[SchemaT]]:
    """Run the JSON body through the validation gate.

    On success the sanitized payload is stored on ``request.state.validated_body``
    and the schema instance is handed to the route. On failure the request
    ends here with a 400.
    """

    async def dependency(request: Request) -> SchemaT:
        raw = await request.body()
        payload: Any = {}
        if raw.strip():
            try:
                payload = json.loads(raw)
            except ValueError:
                raise InputRejected(
                    [FieldViolation(field="body", message="Malformed JSON body")]
                ) from None

        outcome = _gate.validate(schema, payload)
        if not outcome.accepted:
            _raise_rejected(request, outcome)
        request.state.validated_body = outcome.payload
        return outcome.instance

    return dependency


def validate_query(schema: type[SchemaT]) -> Callable[[Request], Awaitable[SchemaT]]:
    """Same as ``validate_body`` for query parameters. Repeated keys become lists."""

    async def dependency(request: Request) -> SchemaT:
        grouped: dict[str, list[str]] = {}
        for key, value in request.query_params.multi_items():
            grouped.setdefault(key, []).append(value)
        payload = {k: v[0] if len(v) == 1 else v for k, v in grouped.items()}

        outcome = _gate.validate(schema, payload)
        if not outcome.accepted:
            _raise_rejected(request, outcome)
        request.state.validated_query = outcome.payload
        return outcome.instance

    return dependency


# ── sanitized query ─────────────────────────────────────


def sanitized_query(request: Request) -> dict[str, str]:
    """Every query parameter, sanitized. The last value wins for repeated keys."""
    return {key: sanitize_input(value) for key, value in request.query_params.items()}


SanitizedQuery = Annotated[dict[str, str], Depends(sanitized_query)]
