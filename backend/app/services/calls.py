"""Call creation and organization-scoped loading."""

from __future__ import annotations

from typing import TYPE_CHECKING

from app.core.errors import NotFound, ValidationError
from app.core.logging import get_logger
from app.core.time import utcnow
from app.db.session import unit_of_work
from app.models.calls import Call
from app.services.audit import record_audit
from app.services.blind_identity import BLIND_CODE_STRATEGIES
from app.services.lifecycle import DRAFT

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import ActorContext
    from app.schemas.calls import CallCreate

logger = get_logger(__name__)


async def get_call_or_404(
    session: AsyncSession,
    *,
    call_id: UUID,
    organization_id: UUID,
) -> Call:
    call = await Call.objects.by_id(call_id).first(session)
    if call is None or call.organization_id != organization_id:
        raise NotFound("Call not found")
    return call


async def create_call(
    session: AsyncSession,
    *,
    actor: ActorContext,
    payload: CallCreate,
) -> Call:
    """Create a call in ``draft`` and audit its creation."""
    if not payload.title.strip():
        raise ValidationError("title must not be empty")
    if (
        payload.opens_at is not None
        and payload.closes_at is not None
        and payload.opens_at >= payload.closes_at
    ):
        raise ValidationError("opens_at must be before closes_at", code="invalid_window")
    if payload.blind_code_strategy not in BLIND_CODE_STRATEGIES:
        raise ValidationError(
            "blind_code_strategy must be one of: "
            f"{', '.join(sorted(BLIND_CODE_STRATEGIES))}",
        )

    now = utcnow()
    call = Call(
        organization_id=actor.organization_id,
        title=payload.title.strip(),
        description=payload.description,
        lifecycle_status=DRAFT,
        opens_at=payload.opens_at,
        closes_at=payload.closes_at,
        blind_code_prefix=payload.blind_code_prefix,
        blind_code_strategy=payload.blind_code_strategy,
        min_reviewers_per_proposal=payload.min_reviewers_per_proposal,
        created_by=actor.actor_id,
        created_at=now,
        updated_at=now,
    )
    async with unit_of_work(session):
        session.add(call)
        await session.flush()
        await record_audit(
            session,
            actor=actor,
            action="call.create",
            entity_type="call",
            entity_id=call.id,
            call_id=call.id,
            payload={"to_status": DRAFT, "title": call.title},
            commit=False,
        )
    await session.refresh(call)
    logger.info("call.created call_id=%s organization_id=%s", call.id, call.organization_id)
    return call
