"""Schemas for review aggregation and decision payloads."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class DecisionCreate(SQLModel):
    decision: str
    justification: str = ""


class DecisionRead(SQLModel):
    id: UUID
    proposal_id: UUID
    decision: str
    justification: str
    decided_by: UUID
    decided_at: datetime


class ReviewSummaryRead(SQLModel):
    """Aggregated submitted-review scores; the disagreement flag is advisory."""

    proposal_id: UUID
    blind_code: str
    assigned_count: int
    submitted_count: int
    average_score: float | None = None
    min_score: float | None = None
    max_score: float | None = None
    score_gap: float | None = None
    disagreement: bool
    decision: DecisionRead | None = None
