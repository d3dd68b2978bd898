"""Review drafting and submission.

A review stays editable while ``submitted_at`` is null. Submission fixes its
``overall_score`` and locks it; aggregation only ever reads submitted reviews.
Reviewers score the criteria of the call's rubric; the scale and weight of
each criterion are read from the rubric, never from the reviewer's payload.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, update
from sqlmodel import col, select

from app.core.errors import NotFound, PermissionDenied, ReviewLocked, ValidationError
from app.core.logging import get_logger
from app.core.time import as_naive_utc, utcnow
from app.db.session import unit_of_work
from app.models.review_assignments import ReviewAssignment
from app.models.reviews import Review, ReviewCriterionScore
from app.models.scoring_criteria import ScoringCriterion
from app.services.audit import record_audit
from app.services.reviewers import require_current_terms
from app.services.scoring_criteria import list_scoring_criteria

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import ActorContext
    from app.models.calls import Call
    from app.models.proposals import Proposal
    from app.schemas.reviews import CriterionScoreInput, ReviewDraftUpdate

logger = get_logger(__name__)

SCORE_SCALE = 10.0
RECOMMENDATIONS = frozenset({"approved", "approved_with_reservations", "not_approved"})


@dataclass(frozen=True)
class ScoredCriterion:
    score: float
    max_score: float = SCORE_SCALE
    weight: float = 1.0


@dataclass(frozen=True)
class ReviewScoreLine:
    """A stored criterion score joined with the rubric line it answers."""

    score: ReviewCriterionScore
    criterion: ScoringCriterion


def compute_overall_score(criteria: Sequence[ScoredCriterion]) -> float | None:
    """Weighted mean of criterion scores rescaled to 0-10, rounded to 2 places.

    ``None`` when there are no criteria or every weight is zero.
    """
    total_weight = sum(item.weight for item in criteria)
    if not criteria or total_weight <= 0:
        return None
    weighted = sum((item.score / item.max_score) * SCORE_SCALE * item.weight for item in criteria)
    return round(weighted / total_weight, 2)


def _validate_recommendation(recommendation: str | None) -> None:
    if recommendation is not None and recommendation not in RECOMMENDATIONS:
        raise ValidationError(
            f"recommendation must be one of: {', '.join(sorted(RECOMMENDATIONS))}",
        )


def _validate_scores(
    scores: Sequence[CriterionScoreInput],
    rubric: Mapping[UUID, ScoringCriterion],
) -> None:
    seen: set[UUID] = set()
    for item in scores:
        criterion = rubric.get(item.criterion_id)
        if criterion is None:
            raise ValidationError(
                f"Criterion {item.criterion_id} is not part of this call's rubric",
                code="unknown_criterion",
            )
        if item.criterion_id in seen:
            raise ValidationError(
                f"Duplicate criterion: {criterion.name}",
                code="duplicate_criterion",
            )
        seen.add(item.criterion_id)
        if not 0 <= item.score <= criterion.max_score:
            raise ValidationError(
                f"score for {criterion.name} must be between 0 and {criterion.max_score:g}",
                code="score_out_of_range",
            )


def _require_assigned_reviewer(assignment: ReviewAssignment, actor: ActorContext) -> None:
    if actor.role != "reviewer" or assignment.reviewer_id != actor.actor_id:
        raise PermissionDenied("Only the assigned reviewer can edit this review")


def _require_open_call(call: Call) -> None:
    if call.is_cancelled:
        raise ValidationError("Call is cancelled", code="call_cancelled")


async def get_assignment_or_404(session: AsyncSession, *, assignment_id: UUID) -> ReviewAssignment:
    assignment = await ReviewAssignment.objects.by_id(assignment_id).first(session)
    if assignment is None:
        raise NotFound("Assignment not found")
    return assignment


async def get_review_for_assignment(
    session: AsyncSession,
    *,
    assignment_id: UUID,
) -> Review | None:
    return await Review.objects.filter_by(assignment_id=assignment_id).first(session)


async def list_review_scores(session: AsyncSession, *, review_id: UUID) -> list[ReviewScoreLine]:
    """Stored criterion scores of a review in rubric order."""
    stmt = (
        select(ReviewCriterionScore, ScoringCriterion)
        .join(ScoringCriterion, col(ScoringCriterion.id) == col(ReviewCriterionScore.criterion_id))
        .where(col(ReviewCriterionScore.review_id) == review_id)
        .order_by(col(ScoringCriterion.sort_order), col(ScoringCriterion.name))
    )
    result = await session.exec(stmt)
    return [ReviewScoreLine(score=score, criterion=criterion) for score, criterion in result.all()]


async def save_review_draft(
    session: AsyncSession,
    *,
    assignment: ReviewAssignment,
    call: Call,
    actor: ActorContext,
    payload: ReviewDraftUpdate,
) -> Review:
    """Create or update the draft review for an assignment.

    When ``payload.scores`` is given it replaces the stored criterion scores;
    every entry must name a criterion of the call's rubric.
    """
    _require_assigned_reviewer(assignment, actor)
    _require_open_call(call)
    await require_current_terms(session, reviewer_id=actor.actor_id)
    _validate_recommendation(payload.recommendation)
    if payload.scores is not None:
        rubric = {item.id: item for item in await list_scoring_criteria(session, call_id=call.id)}
        _validate_scores(payload.scores, rubric)
    review = await get_review_for_assignment(session, assignment_id=assignment.id)
    if review is not None and review.submitted_at is not None:
        raise ReviewLocked("Submitted reviews cannot be edited")

    now = utcnow()
    if review is None:
        review = Review(
            assignment_id=assignment.id,
            proposal_id=assignment.proposal_id,
            reviewer_id=assignment.reviewer_id,
            created_at=now,
        )
    if payload.comments is not None:
        review.comments = payload.comments
    if payload.recommendation is not None:
        review.recommendation = payload.recommendation
    review.updated_at = now

    async with unit_of_work(session):
        session.add(review)
        await session.flush()
        if payload.scores is not None:
            await session.execute(
                delete(ReviewCriterionScore).where(
                    col(ReviewCriterionScore.review_id) == review.id,
                ),
            )
            for item in payload.scores:
                session.add(
                    ReviewCriterionScore(
                        review_id=review.id,
                        criterion_id=item.criterion_id,
                        score=item.score,
                        comment=item.comment,
                    ),
                )
    await session.refresh(review)
    logger.info("review.draft.saved review_id=%s assignment_id=%s", review.id, assignment.id)
    return review


def _resolve_overall_score(
    rubric: Sequence[ScoringCriterion],
    scores: Mapping[UUID, float],
    explicit: float | None,
) -> float:
    if rubric:
        if explicit is not None:
            raise ValidationError(
                "overall_score is computed from criterion scores and cannot be supplied",
                code="score_conflict",
            )
        missing = [criterion.name for criterion in rubric if criterion.id not in scores]
        if missing:
            raise ValidationError(
                f"Every criterion must be scored before submitting; missing: {', '.join(missing)}",
                code="incomplete_scores",
            )
        computed = compute_overall_score(
            [
                ScoredCriterion(
                    score=scores[criterion.id],
                    max_score=criterion.max_score,
                    weight=criterion.weight,
                )
                for criterion in rubric
            ],
        )
        if computed is None:
            raise ValidationError("Criterion weights must not all be zero", code="missing_score")
        return computed
    if explicit is None:
        raise ValidationError(
            "Calls without scoring criteria need an explicit overall_score",
            code="missing_score",
        )
    if not 0 <= explicit <= SCORE_SCALE:
        raise ValidationError(
            f"overall_score must be between 0 and {SCORE_SCALE:g}",
            code="score_out_of_range",
        )
    return float(explicit)


async def _pending_assignment_count(session: AsyncSession, *, proposal_id: UUID) -> int:
    stmt = (
        select(func.count())
        .select_from(ReviewAssignment)
        .where(col(ReviewAssignment.proposal_id) == proposal_id)
        .where(col(ReviewAssignment.status) != "submitted")
    )
    result = await session.exec(stmt)
    return int(result.one())


async def submit_review(
    session: AsyncSession,
    *,
    assignment: ReviewAssignment,
    proposal: Proposal,
    call: Call,
    actor: ActorContext,
    overall_score: float | None = None,
    recommendation: str | None = None,
    comments: str | None = None,
    now: datetime | None = None,
) -> Review:
    """Fix the review's score, stamp ``submitted_at`` and lock it."""
    _require_assigned_reviewer(assignment, actor)
    _require_open_call(call)
    await require_current_terms(session, reviewer_id=actor.actor_id)
    now = as_naive_utc(now) or utcnow()
    review = await get_review_for_assignment(session, assignment_id=assignment.id)
    if assignment.status == "submitted" or (
        review is not None and review.submitted_at is not None
    ):
        raise ReviewLocked("Review was already submitted")

    rubric = await list_scoring_criteria(session, call_id=call.id)
    stored = await list_review_scores(session, review_id=review.id) if review else []
    score = _resolve_overall_score(
        rubric,
        {line.criterion.id: line.score.score for line in stored},
        overall_score,
    )
    final_recommendation = recommendation or (review.recommendation if review else None)
    if final_recommendation not in RECOMMENDATIONS:
        raise ValidationError(
            f"recommendation must be one of: {', '.join(sorted(RECOMMENDATIONS))}",
            code="missing_recommendation",
        )
    if review is None:
        review = Review(
            assignment_id=assignment.id,
            proposal_id=assignment.proposal_id,
            reviewer_id=assignment.reviewer_id,
            created_at=now,
        )
    if comments is not None:
        review.comments = comments
    review.recommendation = final_recommendation
    review.overall_score = score
    review.submitted_at = now
    review.updated_at = now
    assignment_id = assignment.id

    lock_stmt = (
        update(ReviewAssignment)
        .where(
            col(ReviewAssignment.id) == assignment_id,
            col(ReviewAssignment.status) == "assigned",
        )
        .values(status="submitted", submitted_at=now)
        .execution_options(synchronize_session=False)
    )
    try:
        async with unit_of_work(session):
            result = await session.execute(lock_stmt)
            if result.rowcount != 1:
                raise ReviewLocked("Review was already submitted")
            session.add(review)
            await session.flush()
            if await _pending_assignment_count(session, proposal_id=proposal.id) == 0 and (
                proposal.status in {"submitted", "under_review"}
            ):
                proposal.status = "evaluated"
                proposal.updated_at = now
                session.add(proposal)
            await record_audit(
                session,
                actor=actor,
                action="review.submitted",
                entity_type="review",
                entity_id=review.id,
                call_id=call.id,
                payload={
                    "proposal_id": str(proposal.id),
                    "blind_code": proposal.blind_code,
                    "overall_score": score,
                    "recommendation": final_recommendation,
                },
                commit=False,
            )
    except ReviewLocked:
        await session.refresh(assignment)
        await session.refresh(proposal)
        raise

    await session.refresh(assignment)
    await session.refresh(review)
    await session.refresh(proposal)
    logger.info(
        "review.submitted review_id=%s proposal_id=%s overall_score=%s",
        review.id,
        proposal.id,
        score,
    )
    return review
