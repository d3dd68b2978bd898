"""Per-call scoring rubric defined by the call managers."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class ScoringCriterion(QueryModel, table=True):
    """One rubric line; reviewers score it, only managers set its scale and weight."""

    __tablename__ = "scoring_criteria"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint("call_id", "name", name="uq_scoring_criterion_call_name"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    call_id: UUID = Field(foreign_key="calls.id", index=True)
    name: str
    description: str | None = None
    weight: float = Field(default=1.0)
    max_score: float = Field(default=10.0)
    sort_order: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
