# ruff: noqa

from __future__ import annotations

from uuid import uuid4

import pytest

from app.core.errors import PermissionDenied, ReviewLocked, ValidationError
from app.models.audit_entries import AuditEntry
from app.schemas.reviews import CriterionScoreInput, ReviewDraftUpdate
from app.services.assignment import assign_reviewers
from app.services.reviews import (
    ScoredCriterion,
    compute_overall_score,
    list_review_scores,
    save_review_draft,
    submit_review,
)
from app.services.scoring_criteria import list_scoring_criteria

RUBRIC = [("merit", 10.0, 2.0), ("feasibility", 5.0, 1.0)]


def test_compute_overall_score_normalizes_and_weights() -> None:
    assert compute_overall_score([ScoredCriterion(8), ScoredCriterion(9)]) == 8.5
    assert compute_overall_score([ScoredCriterion(4, max_score=5)]) == 8.0
    assert (
        compute_overall_score(
            [ScoredCriterion(10, weight=3), ScoredCriterion(0, max_score=5, weight=1)]
        )
        == 7.5
    )
    assert compute_overall_score([ScoredCriterion(2, max_score=3)]) == 6.67
    assert compute_overall_score([]) is None
    assert compute_overall_score([ScoredCriterion(5, weight=0)]) is None


async def _assigned(session, workflow, reviewers: int = 1, criteria=None):
    call, (proposal,) = await workflow.closed_call_with_proposals(1, criteria=criteria)
    pool = [await workflow.reviewer(f"Reviewer {i}", ["1.01"]) for i in range(reviewers)]
    result = await assign_reviewers(
        session,
        proposal=proposal,
        call=call,
        reviewer_ids=[r.id for r in pool],
        actor=workflow.manager,
    )
    return call, proposal, pool, list(result.created)


async def _rubric(session, call) -> dict[str, object]:
    return {c.name: c.id for c in await list_scoring_criteria(session, call_id=call.id)}


@pytest.mark.asyncio
async def test_draft_can_be_edited_until_submitted(session, workflow) -> None:
    call, proposal, (reviewer,), (assignment,) = await _assigned(
        session, workflow, criteria=RUBRIC
    )
    rubric = await _rubric(session, call)
    actor = workflow.reviewer_actor(reviewer)

    review = await save_review_draft(
        session,
        assignment=assignment,
        call=call,
        actor=actor,
        payload=ReviewDraftUpdate(
            comments="First pass",
            scores=[CriterionScoreInput(criterion_id=rubric["merit"], score=7)],
        ),
    )
    assert review.submitted_at is None
    assert review.overall_score is None

    review = await save_review_draft(
        session,
        assignment=assignment,
        call=call,
        actor=actor,
        payload=ReviewDraftUpdate(
            recommendation="approved",
            scores=[
                CriterionScoreInput(criterion_id=rubric["feasibility"], score=4, comment="ok"),
                CriterionScoreInput(criterion_id=rubric["merit"], score=8),
            ],
        ),
    )
    lines = await list_review_scores(session, review_id=review.id)
    assert [line.criterion.name for line in lines] == ["merit", "feasibility"]
    assert lines[1].score.comment == "ok"
    assert review.comments == "First pass"

    submitted = await submit_review(
        session, assignment=assignment, proposal=proposal, call=call, actor=actor
    )
    # (8/10*10*2 + 4/5*10*1) / 3
    assert submitted.overall_score == 8.0
    assert submitted.submitted_at is not None
    assert assignment.status == "submitted"
    assert proposal.status == "evaluated"

    with pytest.raises(ReviewLocked):
        await save_review_draft(
            session,
            assignment=assignment,
            call=call,
            actor=actor,
            payload=ReviewDraftUpdate(comments="Too late"),
        )
    with pytest.raises(ReviewLocked):
        await submit_review(
            session,
            assignment=assignment,
            proposal=proposal,
            call=call,
            actor=actor,
            recommendation="not_approved",
        )


@pytest.mark.asyncio
async def test_scale_and_weight_come_from_the_rubric(session, workflow) -> None:
    call, proposal, (reviewer,), (assignment,) = await _assigned(
        session, workflow, criteria=RUBRIC
    )
    rubric = await _rubric(session, call)
    actor = workflow.reviewer_actor(reviewer)

    # A reviewer-supplied scale is not part of the payload and is ignored.
    inflated = CriterionScoreInput.model_validate(
        {"criterion_id": rubric["feasibility"], "score": 50, "max_score": 100, "weight": 9}
    )
    with pytest.raises(ValidationError) as exc:
        await save_review_draft(
            session,
            assignment=assignment,
            call=call,
            actor=actor,
            payload=ReviewDraftUpdate(scores=[inflated]),
        )
    assert exc.value.code == "score_out_of_range"

    await save_review_draft(
        session,
        assignment=assignment,
        call=call,
        actor=actor,
        payload=ReviewDraftUpdate(
            scores=[
                CriterionScoreInput(criterion_id=rubric["merit"], score=10),
                CriterionScoreInput(criterion_id=rubric["feasibility"], score=0),
            ],
        ),
    )
    submitted = await submit_review(
        session,
        assignment=assignment,
        proposal=proposal,
        call=call,
        actor=actor,
        recommendation="approved",
    )
    assert submitted.overall_score == 6.67


@pytest.mark.asyncio
async def test_draft_rejects_scores_outside_the_call_rubric(session, workflow) -> None:
    call, _, (reviewer,), (assignment,) = await _assigned(session, workflow, criteria=RUBRIC)
    rubric = await _rubric(session, call)
    other_call, _ = await workflow.closed_call_with_proposals(1, criteria=[("merit", 10, 1)])
    foreign = (await _rubric(session, other_call))["merit"]
    actor = workflow.reviewer_actor(reviewer)

    for scores, code in [
        ([CriterionScoreInput(criterion_id=uuid4(), score=1)], "unknown_criterion"),
        ([CriterionScoreInput(criterion_id=foreign, score=1)], "unknown_criterion"),
        (
            [
                CriterionScoreInput(criterion_id=rubric["merit"], score=1),
                CriterionScoreInput(criterion_id=rubric["merit"], score=2),
            ],
            "duplicate_criterion",
        ),
        ([CriterionScoreInput(criterion_id=rubric["merit"], score=-1)], "score_out_of_range"),
    ]:
        with pytest.raises(ValidationError) as exc:
            await save_review_draft(
                session,
                assignment=assignment,
                call=call,
                actor=actor,
                payload=ReviewDraftUpdate(scores=scores),
            )
        assert exc.value.code == code


@pytest.mark.asyncio
async def test_submit_requires_every_rubric_criterion(session, workflow) -> None:
    call, proposal, (reviewer,), (assignment,) = await _assigned(
        session, workflow, criteria=RUBRIC
    )
    rubric = await _rubric(session, call)
    actor = workflow.reviewer_actor(reviewer)
    await save_review_draft(
        session,
        assignment=assignment,
        call=call,
        actor=actor,
        payload=ReviewDraftUpdate(
            recommendation="approved",
            scores=[CriterionScoreInput(criterion_id=rubric["merit"], score=9)],
        ),
    )

    with pytest.raises(ValidationError) as exc:
        await submit_review(
            session, assignment=assignment, proposal=proposal, call=call, actor=actor
        )
    assert exc.value.code == "incomplete_scores"
    assert "feasibility" in exc.value.message
    with pytest.raises(ValidationError) as exc:
        await submit_review(
            session,
            assignment=assignment,
            proposal=proposal,
            call=call,
            actor=actor,
            overall_score=9.0,
        )
    assert exc.value.code == "score_conflict"
    assert assignment.status == "assigned"


@pytest.mark.asyncio
async def test_only_assigned_reviewer_may_write(session, workflow) -> None:
    call, proposal, _, (assignment,) = await _assigned(session, workflow)
    stranger = await workflow.reviewer("Stranger", ["1.01"])

    with pytest.raises(PermissionDenied):
        await save_review_draft(
            session,
            assignment=assignment,
            call=call,
            actor=workflow.reviewer_actor(stranger),
            payload=ReviewDraftUpdate(comments="hi"),
        )
    with pytest.raises(PermissionDenied):
        await submit_review(
            session,
            assignment=assignment,
            proposal=proposal,
            call=call,
            actor=workflow.manager,
            overall_score=5.0,
            recommendation="approved",
        )


@pytest.mark.asyncio
async def test_reviewer_must_accept_current_terms(session, workflow) -> None:
    call, (proposal,) = await workflow.closed_call_with_proposals(1)
    newcomer = await workflow.reviewer("Newcomer", ["1.01"], terms_accepted=False)
    (assignment,) = (
        await assign_reviewers(
            session,
            proposal=proposal,
            call=call,
            reviewer_ids=[newcomer.id],
            actor=workflow.manager,
        )
    ).created
    actor = workflow.reviewer_actor(newcomer)

    with pytest.raises(PermissionDenied) as exc:
        await save_review_draft(
            session,
            assignment=assignment,
            call=call,
            actor=actor,
            payload=ReviewDraftUpdate(comments="hi"),
        )
    assert exc.value.code == "terms_not_accepted"
    with pytest.raises(PermissionDenied) as exc:
        await submit_review(
            session,
            assignment=assignment,
            proposal=proposal,
            call=call,
            actor=actor,
            overall_score=5.0,
            recommendation="approved",
        )
    assert exc.value.code == "terms_not_accepted"
    assert assignment.status == "assigned"


@pytest.mark.asyncio
async def test_submit_validates_score_inputs(session, workflow) -> None:
    call, proposal, (reviewer,), (assignment,) = await _assigned(session, workflow)
    actor = workflow.reviewer_actor(reviewer)

    with pytest.raises(ValidationError) as exc:
        await submit_review(
            session,
            assignment=assignment,
            proposal=proposal,
            call=call,
            actor=actor,
            recommendation="approved",
        )
    assert exc.value.code == "missing_score"
    with pytest.raises(ValidationError) as exc:
        await submit_review(
            session,
            assignment=assignment,
            proposal=proposal,
            call=call,
            actor=actor,
            overall_score=11.0,
            recommendation="approved",
        )
    assert exc.value.code == "score_out_of_range"
    with pytest.raises(ValidationError) as exc:
        await submit_review(
            session,
            assignment=assignment,
            proposal=proposal,
            call=call,
            actor=actor,
            overall_score=7.0,
        )
    assert exc.value.code == "missing_recommendation"
    assert assignment.status == "assigned"


@pytest.mark.asyncio
async def test_proposal_is_evaluated_only_after_all_reviews(session, workflow) -> None:
    call, proposal, pool, assignments = await _assigned(session, workflow, reviewers=2)
    by_reviewer = {a.reviewer_id: a for a in assignments}

    first = await submit_review(
        session,
        assignment=by_reviewer[pool[0].id],
        proposal=proposal,
        call=call,
        actor=workflow.reviewer_actor(pool[0]),
        overall_score=6.0,
        recommendation="approved_with_reservations",
    )
    assert proposal.status == "under_review"

    await submit_review(
        session,
        assignment=by_reviewer[pool[1].id],
        proposal=proposal,
        call=call,
        actor=workflow.reviewer_actor(pool[1]),
        overall_score=7.0,
        recommendation="approved",
    )
    assert proposal.status == "evaluated"

    entries = await AuditEntry.objects.filter_by(
        entity_id=first.id, action="review.submitted"
    ).all(session)
    assert entries[0].payload["overall_score"] == 6.0
    assert entries[0].payload["blind_code"] == proposal.blind_code
