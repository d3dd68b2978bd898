"""Append-only record of proponent identity reveals."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class IdentityReveal(QueryModel, table=True):
    """One unmasking of a proposal owner; re-reveals add new rows."""

    __tablename__ = "identity_reveals"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    call_id: UUID = Field(foreign_key="calls.id", index=True)
    proposal_id: UUID = Field(foreign_key="proposals.id", index=True)
    revealed_by: UUID = Field(index=True)
    reason: str
    revealed_at: datetime = Field(default_factory=utcnow)
