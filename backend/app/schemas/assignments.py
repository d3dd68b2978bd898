"""Schemas for reviewer ranking, assignment, and conflict payloads."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field
from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class RankedReviewerRead(SQLModel):
    reviewer_id: UUID
    full_name: str
    area_codes: list[str] = []
    load: int
    area_match: bool
    bucket: str
    selectable: bool


class ReviewerRankingRead(SQLModel):
    """Reviewer candidates partitioned in display priority order."""

    proposal_id: UUID
    blind_code: str
    assigned: list[RankedReviewerRead] = []
    recommended: list[RankedReviewerRead] = []
    not_recommended: list[RankedReviewerRead] = []
    conflicted: list[RankedReviewerRead] = []


class AssignReviewersRequest(SQLModel):
    reviewer_ids: list[UUID] = Field(min_length=1)


class ReviewAssignmentRead(SQLModel):
    id: UUID
    proposal_id: UUID
    reviewer_id: UUID
    status: str
    assigned_by: UUID
    created_at: datetime
    submitted_at: datetime | None = None


class AssignReviewersResponse(SQLModel):
    """Assignments created by the request; repeats are reported, not re-created."""

    created: list[ReviewAssignmentRead] = []
    skipped_reviewer_ids: list[UUID] = []


class ConflictCreate(SQLModel):
    reviewer_id: UUID
    reason: str = Field(min_length=1)


class ConflictRead(SQLModel):
    id: UUID
    proposal_id: UUID
    reviewer_id: UUID
    reason: str
    created_at: datetime
