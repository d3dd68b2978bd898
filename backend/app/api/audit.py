"""Audit query endpoint for the review workflow trail."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import UUID

from fastapi import APIRouter
from sqlmodel import col

from app.api.deps import MANAGER_DEP, SESSION_DEP
from app.db.pagination import paginate
from app.models.audit_entries import AuditEntry
from app.schemas.audit import AuditEntryRead
from app.schemas.pagination import DefaultLimitOffsetPage

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fastapi_pagination.limit_offset import LimitOffsetPage
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import ActorContext

router = APIRouter(prefix="/audit", tags=["audit"])
MASKED_ACTOR_ROLES = frozenset({"proponente"})


def audit_entry_to_read(entry: AuditEntry) -> AuditEntryRead:
    """Serialize an entry, withholding applicant actor ids."""
    model = AuditEntryRead.model_validate(entry, from_attributes=True)
    if entry.actor_role in MASKED_ACTOR_ROLES:
        model.actor_id = None
    return model


@router.get("", response_model=DefaultLimitOffsetPage[AuditEntryRead])
async def list_audit_entries(
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = MANAGER_DEP,
    entity_type: str | None = None,
    entity_id: UUID | None = None,
    call_id: UUID | None = None,
    action: str | None = None,
) -> LimitOffsetPage[AuditEntryRead]:
    """Query audit entries for the caller's organization, newest first."""
    query = AuditEntry.objects.filter_by(organization_id=actor.organization_id)
    if entity_type is not None:
        query = query.filter(col(AuditEntry.entity_type) == entity_type)
    if entity_id is not None:
        query = query.filter(col(AuditEntry.entity_id) == entity_id)
    if call_id is not None:
        query = query.filter(col(AuditEntry.call_id) == call_id)
    if action is not None:
        query = query.filter(col(AuditEntry.action) == action)
    statement = query.order_by(col(AuditEntry.created_at).desc(), col(AuditEntry.id)).statement()

    def _transform(items: Sequence[Any]) -> Sequence[Any]:
        return [audit_entry_to_read(entry) for entry in items]

    return await paginate(session, statement, transformer=_transform)
