"""Schemas for the audit query API."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class AuditEntryRead(SQLModel):
    """Audit entry payload returned by read endpoints.

    ``actor_id`` is withheld for applicant-originated entries.
    """

    id: UUID
    organization_id: UUID
    entity_type: str
    entity_id: UUID
    action: str
    actor_id: UUID | None = None
    actor_role: str
    call_id: UUID | None = None
    payload: dict[str, object] | None = None
    created_at: datetime
