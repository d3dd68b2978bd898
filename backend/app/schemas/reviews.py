"""Schemas for review drafting and submission."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field
from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class CriterionScoreInput(SQLModel):
    """Reviewer's score for one rubric criterion; scale and weight come from the rubric."""

    criterion_id: UUID
    score: float
    comment: str = ""


class ReviewDraftUpdate(SQLModel):
    """Partial draft update; ``scores`` replaces all stored criterion scores."""

    comments: str | None = None
    recommendation: str | None = Field(
        default=None,
        examples=["approved", "approved_with_reservations", "not_approved"],
    )
    scores: list[CriterionScoreInput] | None = None


class ReviewSubmit(SQLModel):
    """Submission payload; ``overall_score`` is only accepted when the call has no rubric."""

    overall_score: float | None = None
    recommendation: str | None = None
    comments: str | None = None


class CriterionScoreRead(SQLModel):
    criterion_id: UUID
    name: str
    score: float
    max_score: float
    weight: float
    comment: str


class ReviewRead(SQLModel):
    id: UUID
    assignment_id: UUID
    proposal_id: UUID
    reviewer_id: UUID
    comments: str
    recommendation: str | None = None
    overall_score: float | None = None
    submitted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    scores: list[CriterionScoreRead] = []


class ReviewerAssignmentRead(SQLModel):
    """Reviewer's work queue entry; carries the blind code, never applicant identity."""

    assignment_id: UUID
    status: str
    proposal_id: UUID
    blind_code: str
    knowledge_area_code: str | None = None
    call_id: UUID
    call_title: str
    call_status: str
    assigned_at: datetime
    submitted_at: datetime | None = None
    review_id: UUID | None = None
