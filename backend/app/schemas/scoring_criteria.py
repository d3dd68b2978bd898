"""Schemas for the per-call scoring rubric."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field
from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class ScoringCriterionCreate(SQLModel):
    """Payload for adding a criterion to a call's rubric."""

    name: str
    description: str | None = None
    weight: float = Field(default=1.0, gt=0)
    max_score: float = Field(default=10.0, gt=0)
    sort_order: int | None = None


class ScoringCriterionUpdate(SQLModel):
    """Partial update; omitted fields keep their stored values."""

    name: str | None = None
    description: str | None = None
    weight: float | None = Field(default=None, gt=0)
    max_score: float | None = Field(default=None, gt=0)
    sort_order: int | None = None


class ScoringCriterionRead(SQLModel):
    id: UUID
    call_id: UUID
    name: str
    description: str | None = None
    weight: float
    max_score: float
    sort_order: int
    created_at: datetime
    updated_at: datetime
