"""Request payload schemas checked by the validation gate.

Free-text fields use ``TextField`` or ``PromptField`` so the content
heuristics run as part of ordinary pydantic validation.
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StringConstraints,
)
from pydantic.alias_generators import to_camel
from pydantic.networks import validate_email
from pydantic_core import PydanticCustomError

from crm_backend.engine.patterns import contains_malicious_patterns, contains_prompt_injection
from crm_backend.engine.validation_gate import MALICIOUS_CONTENT, PROMPT_INJECTION


def _reject_malicious(value: str) -> str:
    if contains_malicious_patterns(value):
        raise PydanticCustomError(MALICIOUS_CONTENT, "Input contains potentially malicious content")
    return value


def _reject_prompt_injection(value: str) -> str:
    if contains_prompt_injection(value):
        raise PydanticCustomError(PROMPT_INJECTION, "Input contains prompt injection patterns")
    return value


TextField = Annotated[str, StringConstraints(max_length=10000), AfterValidator(_reject_malicious)]
PromptField = Annotated[
    str, StringConstraints(max_length=5000), AfterValidator(_reject_prompt_injection)
]


def _normalize_email(value: str) -> str:
    return validate_email(value)[1]


Email = Annotated[str, StringConstraints(max_length=254), AfterValidator(_normalize_email)]
Level = Literal["low", "medium", "high"]


def bounded_str(max_length: int, min_length: int = 0) -> Any:
    return Annotated[str, StringConstraints(min_length=min_length, max_length=max_length)]


class CamelModel(BaseModel):
    """Schemas whose wire format uses camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── AI assist tools ─────────────────────────────────────


class EmailDraftRequest(CamelModel):
    recipient_name: TextField | None = None
    recipient_company: TextField | None = None
    subject: TextField | None = None
    content: TextField | None = None
    tone: Literal["professional", "casual", "formal"] | None = None


class EmailGenerationRequest(CamelModel):
    recipient_name: bounded_str(255, 1)
    recipient_company: bounded_str(255, 1)
    theme: bounded_str(500, 1)
    email_angle: bounded_str(1000) | None = None
    key_points: list[str] | None = None
    supporting_reports: list[str] | None = None


class PromptRequest(CamelModel):
    prompt: PromptField
    context: TextField | None = None
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, ge=1, le=4000)


class SearchRequest(CamelModel):
    query: bounded_str(200, 3)
    type: bounded_str(50) | None = None
    date_range: bounded_str(10) | None = None
    engagement_level: bounded_str(20) | None = None
    limit: int | None = Field(default=None, ge=1, le=100)


class FeedbackRequest(BaseModel):
    content_type: bounded_str(50)
    content_id: bounded_str(50)
    rating: StrictBool
    comment: bounded_str(1000) | None = None


# ── CRM records ─────────────────────────────────────────


class ClientRequest(BaseModel):
    name: bounded_str(255, 1)
    email: Email
    company: bounded_str(255, 1)
    subscription_type: str | None = None
    renewal_date: datetime | None = None
    engagement_rate: str | None = None
    click_rate: str | None = None
    interest_tags: list[str] | None = None
    risk_level: Level | None = None
    notes: bounded_str(1000) | None = None


class ProspectRequest(BaseModel):
    name: bounded_str(255, 1)
    email: Email
    company: bounded_str(255, 1)
    interest_tags: list[str] | None = None
    engagement_score: float | None = Field(default=None, ge=0, le=100)
    last_contacted: datetime | None = None
    status: Literal["new", "contacted", "qualified", "proposal", "closed"] | None = None
    notes: bounded_str(1000) | None = None
    how_heard: bounded_str(255) | None = None


class TaskRequest(BaseModel):
    title: bounded_str(255, 1)
    description: bounded_str(1000) | None = None
    priority: Level | None = None
    status: Literal["pending", "in_progress", "completed", "cancelled"] | None = None
    due_date: datetime | None = None
    assigned_to: bounded_str(255) | None = None
    category: bounded_str(100) | None = None


class ContentReportRequest(BaseModel):
    title: bounded_str(500, 1)
    published_date: datetime
    type: bounded_str(100) | None = None
    source_type: bounded_str(100) | None = None
    open_rate: str | None = None
    click_rate: str | None = None
    engagement_level: Level | None = None
    tags: list[str] | None = None
    summary: bounded_str(2000) | None = None
    key_insights: list[str] | None = None
    target_audience: bounded_str(500) | None = None
    performance_metrics: dict[str, Any] | None = None
    full_content: str | None = None
