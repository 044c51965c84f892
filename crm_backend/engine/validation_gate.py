from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from crm_backend.engine.sanitizer import sanitize_value
from crm_backend.models import FieldViolation, ValidationOutcome

logger = logging.getLogger(__name__)

# pydantic error types raised by the content refinements on schema fields
MALICIOUS_CONTENT = "malicious_content"
PROMPT_INJECTION = "prompt_injection"
SECURITY_ERROR_TYPES = frozenset({MALICIOUS_CONTENT, PROMPT_INJECTION})


def violations_from_error(exc: ValidationError) -> list[FieldViolation]:
    violations: list[FieldViolation] = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "body"
        violations.append(
            FieldViolation(
                field=field,
                message=err.get("msg", "Invalid value"),
                kind=err.get("type", ""),
            )
        )
    return violations


def is_security_rejection(violations: list[FieldViolation]) -> bool:
    return any(v.kind in SECURITY_ERROR_TYPES for v in violations)


class ValidationGate:
    """Sanitize, then validate a payload against a pydantic schema.

    Content refinements (SQL/XSS/prompt-injection checks, length caps) live
    on the schema's field types, so a single ``model_validate`` call covers
    both structure and content. The accepted payload is the sanitized,
    validated dump, which passes through the gate again unchanged.
    """

    def __init__(self, sanitizer: Callable[[Any], Any] = sanitize_value) -> None:
        self._sanitize = sanitizer

    def validate(self, schema: type[BaseModel], payload: Any) -> ValidationOutcome:
        if not isinstance(payload, dict):
            return ValidationOutcome.reject(
                [FieldViolation(field="body", message="Expected a JSON object")]
            )

        cleaned = self._sanitize(payload)
        try:
            instance = schema.model_validate(cleaned)
        except ValidationError as exc:
            violations = violations_from_error(exc)
            logger.debug("%s rejected: %s", schema.__name__, violations)
            return ValidationOutcome.reject(violations)

        return ValidationOutcome.accept(
            instance.model_dump(mode="json", by_alias=True, exclude_unset=True),
            instance=instance,
        )
