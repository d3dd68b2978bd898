"""Proposal endpoints: submission, reviewer assignment, aggregation, and decisions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from app.api.deps import APPLICANT_DEP, MANAGER_DEP, PROPOSAL_DEP, SESSION_DEP
from app.schemas.assignments import (
    AssignReviewersRequest,
    AssignReviewersResponse,
    ConflictCreate,
    ConflictRead,
    RankedReviewerRead,
    ReviewAssignmentRead,
    ReviewerRankingRead,
)
from app.schemas.decisions import DecisionCreate, DecisionRead, ReviewSummaryRead
from app.schemas.proposals import ProposalOwnerRead
from app.services.assignment import (
    assign_reviewers,
    declare_conflict,
    rank_reviewers_for_proposal,
)
from app.services.blind_identity import submit_proposal
from app.services.decisions import record_decision, summarize_proposal_reviews

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.api.deps import ProposalContext
    from app.core.auth import ActorContext
    from app.services.assignment import RankedReviewer

router = APIRouter(prefix="/proposals", tags=["proposals"])


def _ranked_read(item: RankedReviewer) -> RankedReviewerRead:
    return RankedReviewerRead(
        reviewer_id=item.candidate.reviewer_id,
        full_name=item.candidate.full_name,
        area_codes=list(item.candidate.area_codes),
        load=item.candidate.load,
        area_match=item.area_match,
        bucket=item.bucket,
        selectable=item.selectable,
    )


@router.post("/{proposal_id}/submit", response_model=ProposalOwnerRead)
async def submit_proposal_endpoint(
    ctx: ProposalContext = PROPOSAL_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = APPLICANT_DEP,
) -> ProposalOwnerRead:
    """Submit a draft proposal while the call accepts submissions."""
    proposal = await submit_proposal(session, proposal=ctx.proposal, call=ctx.call, actor=actor)
    return ProposalOwnerRead.model_validate(proposal, from_attributes=True)


@router.get("/{proposal_id}/reviewer-ranking", response_model=ReviewerRankingRead)
async def get_reviewer_ranking(
    ctx: ProposalContext = PROPOSAL_DEP,
    session: AsyncSession = SESSION_DEP,
    _actor: ActorContext = MANAGER_DEP,
) -> ReviewerRankingRead:
    """Reviewer candidates: assigned, recommended, not recommended, conflicted."""
    ranking = await rank_reviewers_for_proposal(
        session,
        proposal=ctx.proposal,
        organization_id=ctx.call.organization_id,
    )
    return ReviewerRankingRead(
        proposal_id=ctx.proposal.id,
        blind_code=ctx.proposal.blind_code,
        assigned=[_ranked_read(item) for item in ranking.assigned],
        recommended=[_ranked_read(item) for item in ranking.recommended],
        not_recommended=[_ranked_read(item) for item in ranking.not_recommended],
        conflicted=[_ranked_read(item) for item in ranking.conflicted],
    )


@router.post("/{proposal_id}/assignments", response_model=AssignReviewersResponse)
async def assign_proposal_reviewers(
    payload: AssignReviewersRequest,
    ctx: ProposalContext = PROPOSAL_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = MANAGER_DEP,
) -> AssignReviewersResponse:
    """Assign reviewers; already-assigned reviewers are reported as skipped."""
    result = await assign_reviewers(
        session,
        proposal=ctx.proposal,
        call=ctx.call,
        reviewer_ids=payload.reviewer_ids,
        actor=actor,
    )
    return AssignReviewersResponse(
        created=[
            ReviewAssignmentRead.model_validate(row, from_attributes=True)
            for row in result.created
        ],
        skipped_reviewer_ids=list(result.skipped_ids),
    )


@router.post("/{proposal_id}/conflicts", response_model=ConflictRead)
async def declare_proposal_conflict(
    payload: ConflictCreate,
    ctx: ProposalContext = PROPOSAL_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = MANAGER_DEP,
) -> ConflictRead:
    """Bar a reviewer from evaluating this proposal."""
    conflict = await declare_conflict(
        session,
        proposal=ctx.proposal,
        call=ctx.call,
        reviewer_id=payload.reviewer_id,
        reason=payload.reason,
        actor=actor,
    )
    return ConflictRead.model_validate(conflict, from_attributes=True)


@router.get("/{proposal_id}/review-summary", response_model=ReviewSummaryRead)
async def get_review_summary(
    ctx: ProposalContext = PROPOSAL_DEP,
    session: AsyncSession = SESSION_DEP,
    _actor: ActorContext = MANAGER_DEP,
) -> ReviewSummaryRead:
    """Aggregated submitted scores with the advisory disagreement flag."""
    summary = await summarize_proposal_reviews(session, proposal=ctx.proposal)
    return ReviewSummaryRead(
        proposal_id=summary.proposal_id,
        blind_code=summary.blind_code,
        assigned_count=summary.assigned_count,
        submitted_count=summary.scores.submitted_count,
        average_score=summary.scores.average_score,
        min_score=summary.scores.min_score,
        max_score=summary.scores.max_score,
        score_gap=summary.scores.score_gap,
        disagreement=summary.scores.disagreement,
        decision=(
            DecisionRead.model_validate(summary.decision, from_attributes=True)
            if summary.decision is not None
            else None
        ),
    )


@router.post("/{proposal_id}/decision", response_model=DecisionRead)
async def record_proposal_decision(
    payload: DecisionCreate,
    ctx: ProposalContext = PROPOSAL_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = MANAGER_DEP,
) -> DecisionRead:
    """Record the write-once final decision."""
    decision = await record_decision(
        session,
        proposal=ctx.proposal,
        call=ctx.call,
        decision=payload.decision,
        justification=payload.justification,
        actor=actor,
    )
    return DecisionRead.model_validate(decision, from_attributes=True)
