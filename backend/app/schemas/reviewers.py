"""Schemas for reviewer self-service endpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class TermsAcceptanceRequest(SQLModel):
    """Optional version the reviewer read; it must match the version in force."""

    terms_version: str | None = None


class ReviewerTermsRead(SQLModel):
    reviewer_id: UUID
    terms_version: str | None = None
    terms_accepted_at: datetime | None = None
    current_terms_version: str
    terms_current: bool
