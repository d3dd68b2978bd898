"""Blind identity layer: opaque proposal codes and identity-free read paths.

Reviewer-facing and pre-reveal manager-facing reads go through
``list_blind_proposals`` / ``get_blind_proposal``, which select only
non-identifying columns. The applicant reference never leaves this module's
queries.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select

from app.core.config import settings
from app.core.errors import NotFound, ValidationError
from app.core.logging import get_logger
from app.core.time import as_naive_utc, utcnow
from app.db.session import unit_of_work
from app.models.applicants import ApplicantProfile
from app.models.calls import Call
from app.models.proposals import Proposal
from app.models.review_assignments import ReviewAssignment
from app.services.audit import record_audit

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import ActorContext
    from app.schemas.proposals import ProposalCreate

logger = get_logger(__name__)

SEQUENTIAL = "sequential"
RANDOM = "random"
BLIND_CODE_STRATEGIES = frozenset({SEQUENTIAL, RANDOM})
SEQUENTIAL_WIDTH = 4
RANDOM_TOKEN_BYTES = 3
MAX_BLIND_CODE_ATTEMPTS = 5


@dataclass(frozen=True)
class BlindProposal:
    """Proposal as seen before reveal: no applicant reference at all."""

    id: UUID
    call_id: UUID
    blind_code: str
    status: str
    knowledge_area_code: str | None
    answers: dict[str, object] | None
    submitted_at: datetime | None


def normalize_prefix(prefix: str | None) -> str:
    cleaned = (prefix or "").strip().upper()
    return cleaned or settings.default_blind_code_prefix.strip().upper()


def sequential_code(prefix: str, number: int, *, width: int = SEQUENTIAL_WIDTH) -> str:
    """``PROP-0007`` style code for the ``number``-th proposal of a call."""
    if number < 1:
        raise ValueError("sequence numbers start at 1")
    return f"{prefix}-{number:0{width}d}"


def random_code(
    prefix: str,
    *,
    token_factory: Callable[[int], str] = secrets.token_hex,
) -> str:
    """``PROP-3FA2C1`` style code from a cryptographic random token."""
    return f"{prefix}-{token_factory(RANDOM_TOKEN_BYTES).upper()}"


async def _count_call_proposals(session: AsyncSession, *, call_id: UUID) -> int:
    stmt = select(func.count()).select_from(Proposal).where(col(Proposal.call_id) == call_id)
    result = await session.exec(stmt)
    return int(result.one())


async def generate_blind_code(
    session: AsyncSession,
    *,
    call_id: UUID,
    prefix: str | None,
    strategy: str,
    attempt: int = 0,
) -> str:
    """Next candidate code for a call; uniqueness is enforced by the table constraint.

    Proposals are never deleted, so the sequential counter never hands out a
    code twice; ``attempt`` skips past codes taken by concurrent inserts.
    """
    normalized = normalize_prefix(prefix)
    if strategy == RANDOM:
        return random_code(normalized)
    existing = await _count_call_proposals(session, call_id=call_id)
    return sequential_code(normalized, existing + 1 + attempt)


async def ensure_applicant_profile(
    session: AsyncSession,
    *,
    applicant_id: UUID,
    full_name: str | None,
    email: str | None,
    institution: str | None,
) -> ApplicantProfile:
    """Return the applicant profile, creating it from the supplied fields if absent."""
    profile = await ApplicantProfile.objects.by_id(applicant_id).first(session)
    if profile is not None:
        return profile
    if not (full_name or "").strip():
        raise ValidationError("applicant_name is required for a first submission")
    profile = ApplicantProfile(
        id=applicant_id,
        full_name=(full_name or "").strip(),
        email=email,
        institution=institution,
    )
    session.add(profile)
    return profile


async def create_proposal(
    session: AsyncSession,
    *,
    call: Call,
    actor: ActorContext,
    payload: ProposalCreate,
) -> Proposal:
    """Create a draft proposal and assign its permanent blind code."""
    if call.is_cancelled:
        raise ValidationError("Call is cancelled", code="call_cancelled")
    call_id = call.id
    prefix = call.blind_code_prefix
    strategy = call.blind_code_strategy

    for attempt in range(MAX_BLIND_CODE_ATTEMPTS):
        code = await generate_blind_code(
            session,
            call_id=call_id,
            prefix=prefix,
            strategy=strategy,
            attempt=attempt,
        )
        now = utcnow()
        proposal = Proposal(
            call_id=call_id,
            applicant_id=actor.actor_id,
            blind_code=code,
            blind_code_generated_at=now,
            status="draft",
            knowledge_area_code=payload.knowledge_area_code,
            answers=payload.answers,
            created_at=now,
            updated_at=now,
        )
        try:
            async with unit_of_work(session):
                await ensure_applicant_profile(
                    session,
                    applicant_id=actor.actor_id,
                    full_name=payload.applicant_name,
                    email=payload.applicant_email,
                    institution=payload.institution,
                )
                session.add(proposal)
                await session.flush()
                await record_audit(
                    session,
                    actor=actor,
                    action="proposal.create",
                    entity_type="proposal",
                    entity_id=proposal.id,
                    call_id=call_id,
                    payload={"blind_code": code},
                    commit=False,
                )
        except IntegrityError:
            logger.info(
                "proposal.blind_code.collision call_id=%s code=%s attempt=%s",
                call_id,
                code,
                attempt,
            )
            continue
        await session.refresh(proposal)
        logger.info("proposal.created call_id=%s blind_code=%s", call_id, code)
        return proposal

    raise ValidationError(
        "Could not allocate a unique blind code; retry the submission",
        code="blind_code_exhausted",
    )


def is_submission_open(call: Call, *, now: datetime | None = None) -> bool:
    """Whether applicants can currently submit to ``call``."""
    now = as_naive_utc(now) or utcnow()
    if call.is_cancelled or call.lifecycle_status != "published":
        return False
    if call.opens_at is not None and now < call.opens_at:
        return False
    if call.closes_at is not None and now > call.closes_at:
        return False
    return True


async def submit_proposal(
    session: AsyncSession,
    *,
    proposal: Proposal,
    call: Call,
    actor: ActorContext,
    now: datetime | None = None,
) -> Proposal:
    """Move a draft proposal to ``submitted`` while the call accepts submissions."""
    now = as_naive_utc(now) or utcnow()
    if proposal.applicant_id != actor.actor_id:
        raise NotFound("Proposal not found")
    if proposal.status != "draft":
        raise ValidationError(
            f"Only draft proposals can be submitted (status is {proposal.status})",
            code="proposal_not_draft",
        )
    if not is_submission_open(call, now=now):
        raise ValidationError("The call is not accepting submissions", code="submission_closed")

    async with unit_of_work(session):
        proposal.status = "submitted"
        proposal.submitted_at = now
        proposal.updated_at = now
        session.add(proposal)
        await record_audit(
            session,
            actor=actor,
            action="proposal.submit",
            entity_type="proposal",
            entity_id=proposal.id,
            call_id=call.id,
            payload={"blind_code": proposal.blind_code},
            commit=False,
        )
    await session.refresh(proposal)
    return proposal


def _blind_columns() -> tuple[object, ...]:
    return (
        col(Proposal.id),
        col(Proposal.call_id),
        col(Proposal.blind_code),
        col(Proposal.status),
        col(Proposal.knowledge_area_code),
        col(Proposal.answers),
        col(Proposal.submitted_at),
    )


def _to_blind(row: tuple[object, ...]) -> BlindProposal:
    proposal_id, call_id, blind_code, status, area, answers, submitted_at = row
    return BlindProposal(
        id=proposal_id,  # type: ignore[arg-type]
        call_id=call_id,  # type: ignore[arg-type]
        blind_code=str(blind_code),
        status=str(status),
        knowledge_area_code=area if isinstance(area, str) else None,
        answers=answers if isinstance(answers, dict) else None,
        submitted_at=submitted_at if isinstance(submitted_at, datetime) else None,
    )


async def list_blind_proposals(
    session: AsyncSession,
    *,
    call_id: UUID,
    statuses: set[str] | None = None,
    reviewer_id: UUID | None = None,
) -> list[BlindProposal]:
    """Proposals of a call, identity-free, ordered by blind code.

    With ``reviewer_id`` only proposals assigned to that reviewer are returned.
    """
    stmt = select(*_blind_columns()).where(col(Proposal.call_id) == call_id)
    if statuses:
        stmt = stmt.where(col(Proposal.status).in_(sorted(statuses)))
    if reviewer_id is not None:
        stmt = stmt.join(
            ReviewAssignment,
            col(ReviewAssignment.proposal_id) == col(Proposal.id),
        ).where(col(ReviewAssignment.reviewer_id) == reviewer_id)
    result = await session.exec(stmt.order_by(col(Proposal.blind_code)))
    return [_to_blind(tuple(row)) for row in result.all()]


async def get_blind_proposal(session: AsyncSession, *, proposal_id: UUID) -> BlindProposal:
    stmt = select(*_blind_columns()).where(col(Proposal.id) == proposal_id)
    result = await session.exec(stmt)
    row = result.first()
    if row is None:
        raise NotFound("Proposal not found")
    return _to_blind(tuple(row))
