"""Organization reviewer pool and declared conflicts of interest."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Reviewer(QueryModel, table=True):
    """Reviewer registered with an organization, tagged with knowledge areas."""

    __tablename__ = "reviewers"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(index=True)
    full_name: str
    email: str | None = None
    area_codes: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    is_active: bool = Field(default=True, index=True)
    terms_accepted_at: datetime | None = None
    terms_version: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class ReviewerConflict(QueryModel, table=True):
    """Declared conflict barring a reviewer from evaluating a proposal."""

    __tablename__ = "reviewer_conflicts"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint("proposal_id", "reviewer_id", name="uq_reviewer_conflict"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    call_id: UUID = Field(foreign_key="calls.id", index=True)
    proposal_id: UUID = Field(foreign_key="proposals.id", index=True)
    reviewer_id: UUID = Field(foreign_key="reviewers.id", index=True)
    reason: str = Field(default="")
    declared_by: UUID
    created_at: datetime = Field(default_factory=utcnow)
