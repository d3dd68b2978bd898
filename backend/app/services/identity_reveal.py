"""Controlled, audited unmasking of proposal owners.

Batches are all-or-nothing: every proposal id is validated before anything is
written, and all reveal records plus their audit entries commit together.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlmodel import col, select

from app.core.errors import NotFound, PrematureReveal, ValidationError
from app.core.logging import get_logger
from app.core.time import utcnow
from app.db.session import unit_of_work
from app.models.applicants import ApplicantProfile
from app.models.identity_reveals import IdentityReveal
from app.models.proposals import Proposal
from app.services.audit import record_audit
from app.services.lifecycle import CLOSED, is_at_or_after

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import ActorContext
    from app.models.calls import Call

logger = get_logger(__name__)


@dataclass(frozen=True)
class RevealedIdentity:
    proposal_id: UUID
    blind_code: str
    applicant_id: UUID
    full_name: str
    email: str | None
    institution: str | None
    reveal_id: UUID
    revealed_at: datetime


async def reveal_identities(
    session: AsyncSession,
    *,
    call: Call,
    proposal_ids: Sequence[UUID],
    reason: str,
    actor: ActorContext,
) -> list[RevealedIdentity]:
    """Reveal the applicants behind ``proposal_ids`` of ``call``."""
    cleaned_reason = (reason or "").strip()
    if not cleaned_reason:
        raise ValidationError("A reason is required to reveal identities", code="missing_reason")
    requested = list(dict.fromkeys(proposal_ids))
    if not requested:
        raise ValidationError("proposal_ids must not be empty")
    if not is_at_or_after(call.lifecycle_status, CLOSED, is_cancelled=call.is_cancelled):
        raise PrematureReveal(
            f"Identities can only be revealed once the call is closed "
            f"(status is {call.lifecycle_status})",
        )

    stmt = (
        select(Proposal, ApplicantProfile)
        .join(ApplicantProfile, col(ApplicantProfile.id) == col(Proposal.applicant_id))
        .where(col(Proposal.id).in_(requested))
        .where(col(Proposal.call_id) == call.id)
    )
    rows = {proposal.id: (proposal, profile) for proposal, profile in (await session.exec(stmt)).all()}
    missing = [proposal_id for proposal_id in requested if proposal_id not in rows]
    if missing:
        raise NotFound(f"Proposal {missing[0]} not found in this call")

    now = utcnow()
    call_id = call.id
    reveals: list[tuple[IdentityReveal, Proposal, ApplicantProfile]] = []
    async with unit_of_work(session):
        for proposal_id in requested:
            proposal, profile = rows[proposal_id]
            record = IdentityReveal(
                call_id=call_id,
                proposal_id=proposal.id,
                revealed_by=actor.actor_id,
                reason=cleaned_reason,
                revealed_at=now,
            )
            session.add(record)
            await record_audit(
                session,
                actor=actor,
                action="proposal.identity_revealed",
                entity_type="proposal",
                entity_id=proposal.id,
                call_id=call_id,
                payload={"blind_code": proposal.blind_code, "reason": cleaned_reason},
                commit=False,
            )
            reveals.append((record, proposal, profile))

    logger.info(
        "call.identity_reveal call_id=%s count=%s actor_id=%s",
        call_id,
        len(reveals),
        actor.actor_id,
    )
    return [
        RevealedIdentity(
            proposal_id=proposal.id,
            blind_code=proposal.blind_code,
            applicant_id=profile.id,
            full_name=profile.full_name,
            email=profile.email,
            institution=profile.institution,
            reveal_id=record.id,
            revealed_at=record.revealed_at,
        )
        for record, proposal, profile in reveals
    ]
