"""Call-for-proposals (edital) model."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Call(QueryModel, table=True):
    """Published funding opportunity with a bounded review lifecycle.

    ``lifecycle_status`` is only ever written by the lifecycle state machine;
    ``version`` is bumped on every transition for optimistic locking.
    """

    __tablename__ = "calls"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(index=True)
    title: str
    description: str = Field(default="")
    lifecycle_status: str = Field(default="draft", index=True)
    version: int = Field(default=1)
    opens_at: datetime | None = None
    closes_at: datetime | None = None
    is_cancelled: bool = Field(default=False, index=True)
    cancellation_reason: str | None = None
    blind_code_prefix: str | None = None
    blind_code_strategy: str = Field(default="sequential")
    min_reviewers_per_proposal: int | None = None
    created_by: UUID
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
