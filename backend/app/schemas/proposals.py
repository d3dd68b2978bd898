"""Schemas for proposal intake and blind listings."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class ProposalCreate(SQLModel):
    """Payload for starting a draft proposal.

    Applicant fields seed the caller's profile on their first proposal and are
    ignored afterwards.
    """

    knowledge_area_code: str | None = None
    answers: dict[str, object] | None = None
    applicant_name: str | None = None
    applicant_email: str | None = None
    institution: str | None = None


class ProposalOwnerRead(SQLModel):
    """Proposal as returned to its own applicant."""

    id: UUID
    call_id: UUID
    blind_code: str
    status: str
    knowledge_area_code: str | None = None
    answers: dict[str, object] | None = None
    submitted_at: datetime | None = None
    created_at: datetime


class BlindProposalRead(SQLModel):
    """Identity-free proposal payload for reviewers and managers."""

    id: UUID
    call_id: UUID
    blind_code: str
    status: str
    knowledge_area_code: str | None = None
    answers: dict[str, object] | None = None
    submitted_at: datetime | None = None
