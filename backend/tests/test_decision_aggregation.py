# ruff: noqa

from __future__ import annotations

import pytest

from app.core.errors import DecisionAlreadyRecorded, PrematureDecision, ValidationError
from app.models.audit_entries import AuditEntry
from app.models.decisions import ProposalDecision
from app.services import decisions as decisions_service
from app.services.assignment import assign_reviewers
from app.services.decisions import (
    DISPERSION_THRESHOLD,
    has_disagreement,
    record_decision,
    summarize_proposal_reviews,
    summarize_scores,
)
from app.services.reviews import submit_review


def test_empty_scores_have_undefined_average() -> None:
    summary = summarize_scores([])
    assert summary.submitted_count == 0
    assert summary.average_score is None
    assert summary.score_gap is None
    assert summary.disagreement is False


def test_single_score_never_disagrees() -> None:
    summary = summarize_scores([2.0])
    assert summary.average_score == 2.0
    assert summary.score_gap == 0.0
    assert summary.disagreement is False


def test_average_and_gap() -> None:
    summary = summarize_scores([8.0, 9.0])
    assert summary.average_score == 8.5
    assert summary.min_score == 8.0
    assert summary.max_score == 9.0
    assert summary.score_gap == 1.0
    assert summary.disagreement is False


def test_gap_equal_to_threshold_is_not_disagreement() -> None:
    assert DISPERSION_THRESHOLD == 3.0
    assert summarize_scores([8.0, 5.0]).score_gap == 3.0
    assert not has_disagreement([8.0, 5.0])


def test_gap_above_threshold_is_disagreement() -> None:
    summary = summarize_scores([8.0, 4.9])
    assert summary.score_gap == 3.1
    assert summary.disagreement is True
    assert has_disagreement([7.3, 4.2])


def test_threshold_is_overridable() -> None:
    assert has_disagreement([8.0, 9.0], threshold=0.5)
    assert not has_disagreement([8.0, 4.9], threshold=5.0)


async def _reviewed(session, workflow, scores: list[float]):
    call, (proposal,) = await workflow.closed_call_with_proposals(1)
    pool = [await workflow.reviewer(f"R{i}", ["1.01"]) for i in range(len(scores))]
    result = await assign_reviewers(
        session,
        proposal=proposal,
        call=call,
        reviewer_ids=[r.id for r in pool],
        actor=workflow.manager,
    )
    by_reviewer = {a.reviewer_id: a for a in result.created}
    for reviewer, score in zip(pool, scores):
        await submit_review(
            session,
            assignment=by_reviewer[reviewer.id],
            proposal=proposal,
            call=call,
            actor=workflow.reviewer_actor(reviewer),
            overall_score=score,
            recommendation="approved",
        )
    return call, proposal


@pytest.mark.asyncio
async def test_decision_requires_a_submitted_review(session, workflow) -> None:
    call, (proposal,) = await workflow.closed_call_with_proposals(1)

    with pytest.raises(PrematureDecision) as exc:
        await record_decision(
            session,
            proposal=proposal,
            call=call,
            decision="approved",
            justification="",
            actor=workflow.manager,
        )
    assert exc.value.code == "no_submitted_reviews"


@pytest.mark.asyncio
async def test_decision_requires_closed_call(session, workflow) -> None:
    call = await workflow.call()
    call = await workflow.publish(call)
    proposal = await workflow.proposal(call)

    with pytest.raises(PrematureDecision) as exc:
        await record_decision(
            session,
            proposal=proposal,
            call=call,
            decision="approved",
            justification="",
            actor=workflow.manager,
        )
    assert exc.value.code == "call_not_closed"


@pytest.mark.asyncio
async def test_unknown_decision_value_is_rejected(session, workflow) -> None:
    call, proposal = await _reviewed(session, workflow, [7.0])

    with pytest.raises(ValidationError):
        await record_decision(
            session,
            proposal=proposal,
            call=call,
            decision="maybe",
            justification="",
            actor=workflow.manager,
        )


@pytest.mark.asyncio
async def test_decision_is_write_once(session, workflow) -> None:
    call, proposal = await _reviewed(session, workflow, [7.0, 8.0])

    first = await record_decision(
        session,
        proposal=proposal,
        call=call,
        decision="approved_with_adjustments",
        justification="Trim the budget",
        actor=workflow.manager,
    )
    assert proposal.status == "decided"

    with pytest.raises(DecisionAlreadyRecorded):
        await record_decision(
            session,
            proposal=proposal,
            call=call,
            decision="not_approved",
            justification="Changed my mind",
            actor=workflow.manager,
        )

    stored = await ProposalDecision.objects.filter_by(proposal_id=proposal.id).all(session)
    assert len(stored) == 1
    assert stored[0].id == first.id
    assert stored[0].decision == "approved_with_adjustments"
    assert stored[0].justification == "Trim the budget"
    entries = await AuditEntry.objects.filter_by(
        entity_id=proposal.id, action="proposal.decision_recorded"
    ).all(session)
    assert len(entries) == 1


@pytest.mark.asyncio
async def test_unique_constraint_guards_racing_decisions(session, workflow, monkeypatch) -> None:
    call, proposal = await _reviewed(session, workflow, [7.0])
    session.add(
        ProposalDecision(
            proposal_id=proposal.id,
            decision="approved",
            decided_by=workflow.manager.actor_id,
        )
    )
    await session.commit()

    # Simulate a concurrent manager whose read happened before the first commit.
    async def _not_yet_decided(*_args, **_kwargs):
        return None

    monkeypatch.setattr(decisions_service, "get_decision", _not_yet_decided)

    with pytest.raises(DecisionAlreadyRecorded):
        await record_decision(
            session,
            proposal=proposal,
            call=call,
            decision="not_approved",
            justification="",
            actor=workflow.manager,
        )

    stored = await ProposalDecision.objects.filter_by(proposal_id=proposal.id).all(session)
    assert [row.decision for row in stored] == ["approved"]
    await session.refresh(proposal)
    assert proposal.status != "decided"


@pytest.mark.asyncio
async def test_review_summary_reports_disagreement(session, workflow) -> None:
    call, proposal = await _reviewed(session, workflow, [8.0, 4.9])

    summary = await summarize_proposal_reviews(session, proposal=proposal)

    assert summary.assigned_count == 2
    assert summary.scores.submitted_count == 2
    assert summary.scores.average_score == pytest.approx(6.45)
    assert summary.scores.disagreement is True
    assert summary.decision is None


@pytest.mark.asyncio
async def test_audit_failure_rolls_back_decision(session, workflow, monkeypatch) -> None:
    call, proposal = await _reviewed(session, workflow, [7.0])
    status_before = proposal.status

    async def _audit_unavailable(*_args, **_kwargs):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr(decisions_service, "record_audit", _audit_unavailable)

    with pytest.raises(RuntimeError, match="audit store unavailable"):
        await record_decision(
            session,
            proposal=proposal,
            call=call,
            decision="approved",
            justification="Strong proposal",
            actor=workflow.manager,
        )

    assert proposal.status == status_before != "decided"
    assert await ProposalDecision.objects.filter_by(proposal_id=proposal.id).all(session) == []
    entries = await AuditEntry.objects.filter_by(
        entity_id=proposal.id, action="proposal.decision_recorded"
    ).all(session)
    assert entries == []

    monkeypatch.undo()
    decided = await record_decision(
        session,
        proposal=proposal,
        call=call,
        decision="approved",
        justification="Strong proposal",
        actor=workflow.manager,
    )
    assert decided.decision == "approved"
    assert proposal.status == "decided"

