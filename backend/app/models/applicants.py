"""Applicant identity profile, hidden from reviewers until reveal."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class ApplicantProfile(QueryModel, table=True):
    """Identity fields of a proposal owner."""

    __tablename__ = "applicant_profiles"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    full_name: str
    email: str | None = None
    institution: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
