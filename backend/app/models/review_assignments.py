"""Reviewer-to-proposal assignment model."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class ReviewAssignment(QueryModel, table=True):
    """Designates one reviewer to evaluate one proposal."""

    __tablename__ = "review_assignments"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint("proposal_id", "reviewer_id", name="uq_review_assignment"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    proposal_id: UUID = Field(foreign_key="proposals.id", index=True)
    reviewer_id: UUID = Field(foreign_key="reviewers.id", index=True)
    status: str = Field(default="assigned", index=True)  # assigned | submitted
    assigned_by: UUID
    created_at: datetime = Field(default_factory=utcnow)
    submitted_at: datetime | None = None
