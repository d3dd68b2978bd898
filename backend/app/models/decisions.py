"""Write-once final decision per proposal."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class ProposalDecision(QueryModel, table=True):
    """Manager's final determination; the unique ``proposal_id`` makes it write-once."""

    __tablename__ = "proposal_decisions"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    proposal_id: UUID = Field(foreign_key="proposals.id", unique=True)
    decision: str
    justification: str = Field(default="")
    decided_by: UUID
    decided_at: datetime = Field(default_factory=utcnow)
