"""Schemas for call lifecycle API payloads."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field, field_validator
from sqlmodel import SQLModel

from app.core.time import as_naive_utc

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class CallCreate(SQLModel):
    """Payload for creating a call in ``draft``."""

    title: str
    description: str = ""
    opens_at: datetime | None = None
    closes_at: datetime | None = None
    blind_code_prefix: str | None = None
    blind_code_strategy: str = "sequential"
    min_reviewers_per_proposal: int | None = Field(default=None, ge=1)

    @field_validator("opens_at", "closes_at", mode="after")
    @classmethod
    def normalize_window(cls, value: datetime | None) -> datetime | None:
        """Store the submission window as naive UTC like every other timestamp."""
        return as_naive_utc(value)


class CallRead(SQLModel):
    """Call payload returned by read endpoints."""

    id: UUID
    organization_id: UUID
    title: str
    description: str
    lifecycle_status: str
    version: int
    opens_at: datetime | None = None
    closes_at: datetime | None = None
    is_cancelled: bool
    cancellation_reason: str | None = None
    blind_code_prefix: str | None = None
    blind_code_strategy: str
    min_reviewers_per_proposal: int | None = None
    created_at: datetime
    updated_at: datetime


class AllowedTransitionRead(SQLModel):
    status: str
    label: str
    description: str


class CallDetailRead(CallRead):
    """Call payload with the moves a manager may request next."""

    allowed_transitions: list[AllowedTransitionRead] = []


class TransitionRequest(SQLModel):
    """Payload for advancing or cancelling a call."""

    target_status: str = Field(
        description="Next phase in the fixed order, or `cancelled`.",
        examples=["published", "closed", "cancelled"],
    )
    manager_override: bool = Field(
        default=False,
        description="Close before `closes_at` has passed.",
    )
    cancellation_reason: str | None = None


class TimelineEntryRead(SQLModel):
    id: UUID
    action: str
    actor_role: str
    payload: dict[str, object] | None = None
    created_at: datetime


class TimelinePhaseRead(SQLModel):
    status: str
    label: str
    description: str
    state: str
    timestamp: datetime | None = None
    entries: list[TimelineEntryRead] = []


class TimelineRead(SQLModel):
    """Phase-by-phase history of a call rebuilt from its audit trail."""

    call_id: UUID
    lifecycle_status: str
    is_cancelled: bool
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    phases: list[TimelinePhaseRead] = []


class AutoDistributionRequest(SQLModel):
    min_reviewers: int | None = Field(default=None, ge=1)


class AutoDistributionRead(SQLModel):
    """Outcome of an automatic reviewer distribution run."""

    assignments_created: int
    completed: int
    pending: int
