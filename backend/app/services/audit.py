"""Audit logging service for review workflow actions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from app.core.time import utcnow
from app.models.audit_entries import AuditEntry

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import ActorContext


async def record_audit(
    session: AsyncSession,
    *,
    actor: ActorContext,
    action: str,
    entity_type: str,
    entity_id: UUID,
    call_id: UUID | None = None,
    payload: dict[str, object] | None = None,
    commit: bool = True,
) -> AuditEntry:
    """Create an append-only audit log entry.

    Workflow services pass ``commit=False`` so the entry lands in the same
    transaction as the mutation it describes.
    """
    entry = AuditEntry(
        organization_id=actor.organization_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor.actor_id,
        actor_role=actor.role,
        call_id=call_id,
        payload=payload,
        created_at=utcnow(),
    )
    session.add(entry)
    if commit:
        await session.commit()
        await session.refresh(entry)
    return entry
