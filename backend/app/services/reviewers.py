"""Reviewer confidentiality terms and the reviewer's assignment queue."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlmodel import col, select

from app.core.config import settings
from app.core.errors import NotFound, PermissionDenied, ValidationError
from app.core.logging import get_logger
from app.core.time import utcnow
from app.db.session import unit_of_work
from app.models.calls import Call
from app.models.proposals import Proposal
from app.models.review_assignments import ReviewAssignment
from app.models.reviewers import Reviewer
from app.models.reviews import Review
from app.services.audit import record_audit

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import ActorContext

logger = get_logger(__name__)

ASSIGNMENT_STATUSES = frozenset({"assigned", "submitted"})


async def get_reviewer_or_404(
    session: AsyncSession,
    *,
    reviewer_id: UUID,
    organization_id: UUID,
) -> Reviewer:
    reviewer = await Reviewer.objects.by_id(reviewer_id).first(session)
    if reviewer is None or reviewer.organization_id != organization_id:
        raise NotFound("Reviewer not found")
    return reviewer


def has_current_terms(reviewer: Reviewer, *, version: str | None = None) -> bool:
    """Whether the reviewer accepted the terms version currently in force."""
    current = version or settings.reviewer_terms_version
    return reviewer.terms_accepted_at is not None and reviewer.terms_version == current


async def require_current_terms(session: AsyncSession, *, reviewer_id: UUID) -> Reviewer:
    """Raise unless the reviewer accepted the current confidentiality terms."""
    reviewer = await Reviewer.objects.by_id(reviewer_id).first(session)
    if reviewer is None or not has_current_terms(reviewer):
        raise PermissionDenied(
            "Accept the current reviewer terms before reviewing "
            f"(version {settings.reviewer_terms_version})",
            code="terms_not_accepted",
        )
    return reviewer


async def accept_reviewer_terms(
    session: AsyncSession,
    *,
    actor: ActorContext,
    version: str | None = None,
) -> Reviewer:
    """Record the caller's acceptance of the current terms version.

    Accepting a stale version is refused so a reviewer cannot acknowledge
    terms that are no longer in force. Re-accepting the same version keeps
    the original acceptance timestamp.
    """
    current = settings.reviewer_terms_version
    if version is not None and version != current:
        raise PermissionDenied(
            f"Terms version {version} is not current (expected {current})",
            code="terms_version_mismatch",
        )
    reviewer = await get_reviewer_or_404(
        session,
        reviewer_id=actor.actor_id,
        organization_id=actor.organization_id,
    )
    if has_current_terms(reviewer, version=current):
        return reviewer

    reviewer.terms_accepted_at = utcnow()
    reviewer.terms_version = current
    reviewer_id = reviewer.id
    async with unit_of_work(session):
        session.add(reviewer)
        await record_audit(
            session,
            actor=actor,
            action="reviewer.terms_accepted",
            entity_type="reviewer",
            entity_id=reviewer_id,
            payload={"terms_version": current},
            commit=False,
        )
    await session.refresh(reviewer)
    logger.info("reviewer.terms.accepted reviewer_id=%s version=%s", reviewer_id, current)
    return reviewer


@dataclass(frozen=True)
class ReviewerAssignmentRow:
    assignment_id: UUID
    status: str
    proposal_id: UUID
    blind_code: str
    knowledge_area_code: str | None
    call_id: UUID
    call_title: str
    call_status: str
    assigned_at: datetime
    submitted_at: datetime | None
    review_id: UUID | None


async def list_reviewer_assignments(
    session: AsyncSession,
    *,
    reviewer_id: UUID,
    organization_id: UUID,
    status: str | None = None,
    call_id: UUID | None = None,
) -> list[ReviewerAssignmentRow]:
    """Assignments of one reviewer, oldest first, with identity-free proposal facts."""
    if status is not None and status not in ASSIGNMENT_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(ASSIGNMENT_STATUSES))}",
        )
    stmt = (
        select(
            col(ReviewAssignment.id),
            col(ReviewAssignment.status),
            col(ReviewAssignment.created_at),
            col(ReviewAssignment.submitted_at),
            col(Proposal.id),
            col(Proposal.blind_code),
            col(Proposal.knowledge_area_code),
            col(Call.id),
            col(Call.title),
            col(Call.lifecycle_status),
            col(Review.id),
        )
        .join(Proposal, col(Proposal.id) == col(ReviewAssignment.proposal_id))
        .join(Call, col(Call.id) == col(Proposal.call_id))
        .outerjoin(Review, col(Review.assignment_id) == col(ReviewAssignment.id))
        .where(col(ReviewAssignment.reviewer_id) == reviewer_id)
        .where(col(Call.organization_id) == organization_id)
        .order_by(col(ReviewAssignment.created_at), col(ReviewAssignment.id))
    )
    if status is not None:
        stmt = stmt.where(col(ReviewAssignment.status) == status)
    if call_id is not None:
        stmt = stmt.where(col(Call.id) == call_id)
    result = await session.exec(stmt)
    return [
        ReviewerAssignmentRow(
            assignment_id=assignment_id,
            status=assignment_status,
            proposal_id=proposal_id,
            blind_code=blind_code,
            knowledge_area_code=area,
            call_id=row_call_id,
            call_title=title,
            call_status=call_status,
            assigned_at=assigned_at,
            submitted_at=submitted_at,
            review_id=review_id,
        )
        for (
            assignment_id,
            assignment_status,
            assigned_at,
            submitted_at,
            proposal_id,
            blind_code,
            area,
            row_call_id,
            title,
            call_status,
            review_id,
        ) in result.all()
    ]
