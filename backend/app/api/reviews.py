"""Reviewer endpoints: the assignment queue plus drafting and submitting a review."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, Query

from app.api.deps import ASSIGNMENT_DEP, REVIEWER_DEP, SESSION_DEP
from app.core.errors import NotFound, PermissionDenied
from app.schemas.reviews import (
    CriterionScoreRead,
    ReviewDraftUpdate,
    ReviewerAssignmentRead,
    ReviewRead,
    ReviewSubmit,
)
from app.services.reviewers import list_reviewer_assignments
from app.services.reviews import (
    get_review_for_assignment,
    list_review_scores,
    save_review_draft,
    submit_review,
)

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.api.deps import AssignmentContext
    from app.core.auth import ActorContext
    from app.models.reviews import Review

router = APIRouter(prefix="/assignments", tags=["reviews"])
STATUS_QUERY = Query(default=None, description="Filter by `assigned` or `submitted`.")
CALL_ID_QUERY = Query(default=None)


async def _review_read(session: AsyncSession, review: Review) -> ReviewRead:
    model = ReviewRead.model_validate(review, from_attributes=True)
    model.scores = [
        CriterionScoreRead(
            criterion_id=line.criterion.id,
            name=line.criterion.name,
            score=line.score.score,
            max_score=line.criterion.max_score,
            weight=line.criterion.weight,
            comment=line.score.comment,
        )
        for line in await list_review_scores(session, review_id=review.id)
    ]
    return model


@router.get("", response_model=list[ReviewerAssignmentRead])
async def list_my_assignments(
    status: str | None = STATUS_QUERY,
    call_id: UUID | None = CALL_ID_QUERY,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = REVIEWER_DEP,
) -> list[ReviewerAssignmentRead]:
    """List the caller's assignments by blind code, oldest first."""
    rows = await list_reviewer_assignments(
        session,
        reviewer_id=actor.actor_id,
        organization_id=actor.organization_id,
        status=status,
        call_id=call_id,
    )
    return [ReviewerAssignmentRead.model_validate(row, from_attributes=True) for row in rows]


@router.get("/{assignment_id}/review", response_model=ReviewRead)
async def get_review(
    ctx: AssignmentContext = ASSIGNMENT_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = REVIEWER_DEP,
) -> ReviewRead:
    """Return the caller's review for this assignment."""
    if ctx.assignment.reviewer_id != actor.actor_id:
        raise PermissionDenied("Only the assigned reviewer can read this review")
    review = await get_review_for_assignment(session, assignment_id=ctx.assignment.id)
    if review is None:
        raise NotFound("No review has been started for this assignment")
    return await _review_read(session, review)


@router.put("/{assignment_id}/review", response_model=ReviewRead)
async def save_review(
    payload: ReviewDraftUpdate,
    ctx: AssignmentContext = ASSIGNMENT_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = REVIEWER_DEP,
) -> ReviewRead:
    """Create or update the draft review."""
    review = await save_review_draft(
        session,
        assignment=ctx.assignment,
        call=ctx.call,
        actor=actor,
        payload=payload,
    )
    return await _review_read(session, review)


@router.post("/{assignment_id}/review/submit", response_model=ReviewRead)
async def submit_review_endpoint(
    payload: ReviewSubmit,
    ctx: AssignmentContext = ASSIGNMENT_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = REVIEWER_DEP,
) -> ReviewRead:
    """Submit and lock the review."""
    review = await submit_review(
        session,
        assignment=ctx.assignment,
        proposal=ctx.proposal,
        call=ctx.call,
        actor=actor,
        overall_score=payload.overall_score,
        recommendation=payload.recommendation,
        comments=payload.comments,
    )
    return await _review_read(session, review)
