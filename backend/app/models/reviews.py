"""Review and per-criterion score models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Review(QueryModel, table=True):
    """One reviewer's evaluation of one proposal; a draft until submitted."""

    __tablename__ = "reviews"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    assignment_id: UUID = Field(foreign_key="review_assignments.id", unique=True)
    proposal_id: UUID = Field(foreign_key="proposals.id", index=True)
    reviewer_id: UUID = Field(foreign_key="reviewers.id", index=True)
    comments: str = Field(default="")
    recommendation: str | None = None
    overall_score: float | None = None
    submitted_at: datetime | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ReviewCriterionScore(QueryModel, table=True):
    """Score a reviewer gave one rubric criterion; scale and weight live on the criterion."""

    __tablename__ = "review_criterion_scores"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint("review_id", "criterion_id", name="uq_review_criterion"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    review_id: UUID = Field(foreign_key="reviews.id", index=True)
    criterion_id: UUID = Field(foreign_key="scoring_criteria.id", index=True)
    score: float
    comment: str = Field(default="")
