from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class FieldViolation(BaseModel):
    field: str
    message: str
    # pydantic error type; internal, not part of the response body
    kind: str = Field(default="", exclude=True)


class ValidationOutcome(BaseModel):
    """Result of one pass through the validation gate. Never persisted."""

    accepted: bool
    payload: dict[str, Any] | None = None
    violations: list[FieldViolation] = Field(default_factory=list)
    # the validated schema instance, for handlers that want attribute access
    instance: Any = Field(default=None, exclude=True, repr=False)

    @classmethod
    def accept(cls, payload: dict[str, Any], instance: Any = None) -> ValidationOutcome:
        return cls(accepted=True, payload=payload, instance=instance)

    @classmethod
    def reject(cls, violations: list[FieldViolation]) -> ValidationOutcome:
        return cls(accepted=False, violations=violations)
