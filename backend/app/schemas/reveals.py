"""Schemas for identity reveal payloads."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field
from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class IdentityRevealRequest(SQLModel):
    proposal_ids: list[UUID] = Field(min_length=1)
    reason: str


class RevealedIdentityRead(SQLModel):
    """Applicant identity behind a blind code, returned only after a logged reveal."""

    proposal_id: UUID
    blind_code: str
    applicant_id: UUID
    full_name: str
    email: str | None = None
    institution: str | None = None
    reveal_id: UUID
    revealed_at: datetime
