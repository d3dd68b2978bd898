"""Score aggregation, dispersion detection, and write-once decisions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select

from app.core.config import DEFAULT_DISPERSION_THRESHOLD, settings
from app.core.errors import DecisionAlreadyRecorded, PrematureDecision, ValidationError
from app.core.logging import get_logger
from app.core.time import utcnow
from app.db.session import unit_of_work
from app.models.decisions import ProposalDecision
from app.models.review_assignments import ReviewAssignment
from app.models.reviews import Review
from app.services.audit import record_audit
from app.services.lifecycle import CLOSED, is_at_or_after

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import ActorContext
    from app.models.calls import Call
    from app.models.proposals import Proposal

logger = get_logger(__name__)

DISPERSION_THRESHOLD = DEFAULT_DISPERSION_THRESHOLD
GAP_PRECISION = 6
VALID_DECISIONS = frozenset({"approved", "approved_with_adjustments", "not_approved"})


@dataclass(frozen=True)
class ScoreSummary:
    """Aggregate of submitted ``overall_score`` values for one proposal."""

    submitted_count: int
    average_score: float | None
    min_score: float | None
    max_score: float | None
    score_gap: float | None
    disagreement: bool


def summarize_scores(scores: Sequence[float], *, threshold: float | None = None) -> ScoreSummary:
    """Mean and max-minus-min spread of the given scores.

    The average is undefined (``None``) for an empty list. The disagreement
    flag needs at least two scores and a gap strictly above ``threshold``;
    the gap is rounded first so ``8.0 - 5.0`` and friends compare exactly.
    """
    limit = DISPERSION_THRESHOLD if threshold is None else threshold
    if not scores:
        return ScoreSummary(0, None, None, None, None, disagreement=False)
    low, high = min(scores), max(scores)
    gap = round(high - low, GAP_PRECISION)
    return ScoreSummary(
        submitted_count=len(scores),
        average_score=sum(scores) / len(scores),
        min_score=low,
        max_score=high,
        score_gap=gap,
        disagreement=len(scores) >= 2 and gap > limit,
    )


def has_disagreement(scores: Sequence[float], *, threshold: float | None = None) -> bool:
    return summarize_scores(scores, threshold=threshold).disagreement


@dataclass(frozen=True)
class ProposalReviewSummary:
    proposal_id: UUID
    blind_code: str
    assigned_count: int
    scores: ScoreSummary
    decision: ProposalDecision | None


async def submitted_scores(session: AsyncSession, *, proposal_id: UUID) -> list[float]:
    """``overall_score`` of every submitted review, oldest submission first."""
    stmt = (
        select(col(Review.overall_score))
        .where(col(Review.proposal_id) == proposal_id)
        .where(col(Review.submitted_at).is_not(None))
        .where(col(Review.overall_score).is_not(None))
        .order_by(col(Review.submitted_at), col(Review.id))
    )
    result = await session.exec(stmt)
    return [float(score) for score in result.all() if score is not None]


async def get_decision(session: AsyncSession, *, proposal_id: UUID) -> ProposalDecision | None:
    return await ProposalDecision.objects.filter_by(proposal_id=proposal_id).first(session)


async def summarize_proposal_reviews(
    session: AsyncSession,
    *,
    proposal: Proposal,
    threshold: float | None = None,
) -> ProposalReviewSummary:
    """Aggregated review state of a proposal for the decision-maker."""
    scores = await submitted_scores(session, proposal_id=proposal.id)
    assigned_stmt = (
        select(func.count())
        .select_from(ReviewAssignment)
        .where(col(ReviewAssignment.proposal_id) == proposal.id)
    )
    assigned_count = int((await session.exec(assigned_stmt)).one())
    decision = await get_decision(session, proposal_id=proposal.id)
    return ProposalReviewSummary(
        proposal_id=proposal.id,
        blind_code=proposal.blind_code,
        assigned_count=assigned_count,
        scores=summarize_scores(
            scores,
            threshold=settings.dispersion_threshold if threshold is None else threshold,
        ),
        decision=decision,
    )


async def record_decision(
    session: AsyncSession,
    *,
    proposal: Proposal,
    call: Call,
    decision: str,
    justification: str,
    actor: ActorContext,
) -> ProposalDecision:
    """Persist the final decision for a proposal exactly once."""
    if decision not in VALID_DECISIONS:
        raise ValidationError(
            f"decision must be one of: {', '.join(sorted(VALID_DECISIONS))}",
        )
    if not is_at_or_after(call.lifecycle_status, CLOSED, is_cancelled=call.is_cancelled):
        raise PrematureDecision(
            f"Decisions require the call to be closed (status is {call.lifecycle_status})",
            code="call_not_closed",
        )
    scores = await submitted_scores(session, proposal_id=proposal.id)
    if not scores:
        raise PrematureDecision(
            "At least one submitted review is required before deciding",
            code="no_submitted_reviews",
        )
    existing = await get_decision(session, proposal_id=proposal.id)
    if existing is not None:
        raise DecisionAlreadyRecorded("This proposal has already been decided")

    summary = summarize_scores(scores, threshold=settings.dispersion_threshold)
    now = utcnow()
    row = ProposalDecision(
        proposal_id=proposal.id,
        decision=decision,
        justification=justification.strip(),
        decided_by=actor.actor_id,
        decided_at=now,
    )
    proposal_id = proposal.id
    try:
        async with unit_of_work(session):
            session.add(row)
            await session.flush()
            proposal.status = "decided"
            proposal.updated_at = now
            session.add(proposal)
            await record_audit(
                session,
                actor=actor,
                action="proposal.decision_recorded",
                entity_type="proposal",
                entity_id=proposal_id,
                call_id=call.id,
                payload={
                    "decision": decision,
                    "blind_code": proposal.blind_code,
                    "average_score": summary.average_score,
                    "disagreement": summary.disagreement,
                },
                commit=False,
            )
    except IntegrityError as exc:
        await session.refresh(proposal)
        await session.refresh(call)
        logger.info("proposal.decision.conflict proposal_id=%s", proposal_id)
        raise DecisionAlreadyRecorded("This proposal has already been decided") from exc
    except Exception:
        await session.refresh(proposal)
        await session.refresh(call)
        logger.exception("proposal.decision.failed proposal_id=%s", proposal_id)
        raise

    await session.refresh(row)
    await session.refresh(proposal)
    logger.info(
        "proposal.decision.recorded proposal_id=%s decision=%s disagreement=%s",
        proposal_id,
        decision,
        summary.disagreement,
    )
    return row
