"""Proposal (submission) model with its stable blind code."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Proposal(QueryModel, table=True):
    """Applicant submission to a call, labelled only by ``blind_code`` in review."""

    __tablename__ = "proposals"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint("call_id", "blind_code", name="uq_proposal_call_blind_code"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    call_id: UUID = Field(foreign_key="calls.id", index=True)
    applicant_id: UUID = Field(foreign_key="applicant_profiles.id", index=True)
    blind_code: str = Field(index=True)
    blind_code_generated_at: datetime = Field(default_factory=utcnow)
    status: str = Field(default="draft", index=True)
    knowledge_area_code: str | None = None
    answers: dict[str, object] | None = Field(default=None, sa_column=Column(JSON))
    submitted_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
