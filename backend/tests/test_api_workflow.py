# ruff: noqa

from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.time import utcnow
from app.db.session import get_session
from app.main import app

IDENTITY_FIELDS = {"applicant_id", "applicant_name", "applicant_email", "full_name", "email"}


def _headers(actor) -> dict[str, str]:
    return {
        "X-Actor-Id": str(actor.actor_id),
        "X-Actor-Role": actor.role,
        "X-Organization-Id": str(actor.organization_id),
    }


@pytest_asyncio.fixture
async def client(engine):
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _override_get_session():
        async with maker() as session:
            yield session

    app.dependency_overrides[get_session] = _override_get_session
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


async def _open_call(client: AsyncClient, manager) -> dict:
    now = utcnow()
    resp = await client.post(
        "/api/v1/calls",
        headers=_headers(manager),
        json={
            "title": "Innovation Call",
            "opens_at": (now - timedelta(days=1)).isoformat(),
            "closes_at": (now + timedelta(days=5)).isoformat(),
        },
    )
    assert resp.status_code == 200
    call = resp.json()
    assert call["lifecycle_status"] == "draft"

    resp = await client.post(
        f"/api/v1/calls/{call['id']}/transitions",
        headers=_headers(manager),
        json={"target_status": "published"},
    )
    assert resp.status_code == 200
    return resp.json()


async def _submit_proposal(client: AsyncClient, call_id: str, applicant) -> dict:
    resp = await client.post(
        f"/api/v1/calls/{call_id}/proposals",
        headers=_headers(applicant),
        json={
            "knowledge_area_code": "2.03.01.00-6",
            "answers": {"summary": "Coastal erosion monitoring"},
            "applicant_name": "Carla Dias",
            "applicant_email": "carla@uni.example",
            "institution": "State University",
        },
    )
    assert resp.status_code == 200
    proposal = resp.json()
    resp = await client.post(
        f"/api/v1/proposals/{proposal['id']}/submit", headers=_headers(applicant)
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "submitted"
    return proposal


@pytest.mark.asyncio
async def test_full_review_workflow_over_http(client, workflow) -> None:
    manager = workflow.manager
    applicant = workflow.applicant()
    call = await _open_call(client, manager)
    call_id = call["id"]
    assert [t["status"] for t in call["allowed_transitions"]] == ["closed", "cancelled"]

    proposal = await _submit_proposal(client, call_id, applicant)
    assert proposal["blind_code"] == "PROP-0001"

    resp = await client.post(
        f"/api/v1/proposals/{proposal['id']}/assignments",
        headers=_headers(manager),
        json={"reviewer_ids": [str(uuid4())]},
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "premature_assignment"

    resp = await client.post(
        f"/api/v1/calls/{call_id}/transitions",
        headers=_headers(manager),
        json={"target_status": "closed", "manager_override": True},
    )
    assert resp.status_code == 200

    first = await workflow.reviewer("Bruno Alves", ["2.03"])
    second = await workflow.reviewer("Diana Reis", ["2"])
    await workflow.reviewer("Eva Costa", ["5.01"])

    resp = await client.get(
        f"/api/v1/proposals/{proposal['id']}/reviewer-ranking", headers=_headers(manager)
    )
    assert resp.status_code == 200
    ranking = resp.json()
    assert [r["full_name"] for r in ranking["recommended"]] == ["Bruno Alves", "Diana Reis"]
    assert [r["full_name"] for r in ranking["not_recommended"]] == ["Eva Costa"]

    resp = await client.post(
        f"/api/v1/proposals/{proposal['id']}/assignments",
        headers=_headers(manager),
        json={"reviewer_ids": [str(first.id), str(second.id)]},
    )
    assert resp.status_code == 200
    assignments = {row["reviewer_id"]: row["id"] for row in resp.json()["created"]}
    assert len(assignments) == 2

    resp = await client.get(
        f"/api/v1/calls/{call_id}/proposals", headers=_headers(workflow.reviewer_actor(first))
    )
    assert resp.status_code == 200
    listed = resp.json()
    assert [row["blind_code"] for row in listed] == ["PROP-0001"]
    assert IDENTITY_FIELDS.isdisjoint(listed[0])

    for reviewer, score in ((first, 8.0), (second, 9.0)):
        reviewer_headers = _headers(workflow.reviewer_actor(reviewer))
        resp = await client.get("/api/v1/assignments", headers=reviewer_headers)
        assert resp.status_code == 200
        (queued,) = resp.json()
        assert queued["blind_code"] == "PROP-0001"
        assert queued["status"] == "assigned"
        assert IDENTITY_FIELDS.isdisjoint(queued)
        assignment_id = queued["assignment_id"]
        assert assignment_id == assignments[str(reviewer.id)]
        resp = await client.put(
            f"/api/v1/assignments/{assignment_id}/review",
            headers=reviewer_headers,
            json={"comments": "Clear objectives", "recommendation": "approved"},
        )
        assert resp.status_code == 200
        assert resp.json()["submitted_at"] is None
        resp = await client.post(
            f"/api/v1/assignments/{assignment_id}/review/submit",
            headers=reviewer_headers,
            json={"overall_score": score},
        )
        assert resp.status_code == 200
        assert resp.json()["overall_score"] == score

    resp = await client.put(
        f"/api/v1/assignments/{assignments[str(first.id)]}/review",
        headers=_headers(workflow.reviewer_actor(first)),
        json={"comments": "Second thoughts"},
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "review_locked"

    resp = await client.get(
        f"/api/v1/proposals/{proposal['id']}/review-summary", headers=_headers(manager)
    )
    assert resp.status_code == 200
    summary = resp.json()
    assert summary["average_score"] == 8.5
    assert summary["disagreement"] is False
    assert summary["decision"] is None

    resp = await client.post(
        f"/api/v1/proposals/{proposal['id']}/decision",
        headers=_headers(manager),
        json={"decision": "approved", "justification": "Consensus"},
    )
    assert resp.status_code == 200
    resp = await client.post(
        f"/api/v1/proposals/{proposal['id']}/decision",
        headers=_headers(manager),
        json={"decision": "not_approved"},
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "decision_already_recorded"

    resp = await client.post(
        f"/api/v1/calls/{call_id}/identity-reveals",
        headers=_headers(manager),
        json={"proposal_ids": [proposal["id"]], "reason": "Grant agreement"},
    )
    assert resp.status_code == 200
    assert resp.json()[0]["full_name"] == "Carla Dias"

    resp = await client.get(
        "/api/v1/audit",
        headers=_headers(manager),
        params={"entity_id": proposal["id"]},
    )
    assert resp.status_code == 200
    items = resp.json()["items"]
    by_action = {item["action"]: item for item in items}
    assert by_action["proposal.create"]["actor_id"] is None
    assert by_action["proposal.create"]["actor_role"] == "proponente"
    assert by_action["proposal.decision_recorded"]["actor_id"] == str(manager.actor_id)


@pytest.mark.asyncio
async def test_reveal_before_close_is_conflict(client, workflow) -> None:
    call = await _open_call(client, workflow.manager)
    proposal = await _submit_proposal(client, call["id"], workflow.applicant())

    resp = await client.post(
        f"/api/v1/calls/{call['id']}/identity-reveals",
        headers=_headers(workflow.manager),
        json={"proposal_ids": [proposal["id"]], "reason": "Early look"},
    )

    assert resp.status_code == 409
    assert resp.json()["code"] == "premature_reveal"


@pytest.mark.asyncio
async def test_invalid_transition_reports_code(client, workflow) -> None:
    call = await _open_call(client, workflow.manager)

    resp = await client.post(
        f"/api/v1/calls/{call['id']}/transitions",
        headers=_headers(workflow.manager),
        json={"target_status": "closed"},
    )

    assert resp.status_code == 409
    assert resp.json()["code"] == "submission_window_open"


@pytest.mark.asyncio
async def test_missing_identity_headers_are_rejected(client) -> None:
    resp = await client.post("/api/v1/calls", json={"title": "Anonymous"})

    assert resp.status_code == 403
    assert resp.json()["code"] == "unauthenticated"


@pytest.mark.asyncio
async def test_applicants_cannot_manage_calls(client, workflow) -> None:
    resp = await client.post(
        "/api/v1/calls",
        headers=_headers(workflow.applicant()),
        json={"title": "Self-service call"},
    )

    assert resp.status_code == 403
    assert resp.json()["code"] == "permission_denied"


@pytest.mark.asyncio
async def test_calls_are_scoped_to_the_callers_organization(client, workflow) -> None:
    call = await _open_call(client, workflow.manager)
    outsider = {
        "X-Actor-Id": str(uuid4()),
        "X-Actor-Role": "edital_manager",
        "X-Organization-Id": str(uuid4()),
    }

    resp = await client.get(f"/api/v1/calls/{call['id']}", headers=outsider)

    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_applicants_cannot_list_blind_proposals(client, workflow) -> None:
    call = await _open_call(client, workflow.manager)

    resp = await client.get(
        f"/api/v1/calls/{call['id']}/proposals", headers=_headers(workflow.applicant())
    )

    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_health_endpoints(client) -> None:
    assert (await client.get("/health")).json() == {"ok": True}
    assert (await client.get("/readyz")).json() == {"ok": True}


@pytest.mark.asyncio
async def test_call_window_accepts_utc_designator(client, workflow) -> None:
    manager = workflow.manager
    resp = await client.post(
        "/api/v1/calls",
        headers=_headers(manager),
        json={
            "title": "Zulu Call",
            "opens_at": "2020-01-01T00:00:00Z",
            "closes_at": "2099-12-31T21:00:00-03:00",
        },
    )
    assert resp.status_code == 200
    call = resp.json()
    assert call["opens_at"] == "2020-01-01T00:00:00"
    assert call["closes_at"] == "2100-01-01T00:00:00"

    resp = await client.post(
        f"/api/v1/calls/{call['id']}/transitions",
        headers=_headers(manager),
        json={"target_status": "published"},
    )
    assert resp.status_code == 200
    resp = await client.post(
        f"/api/v1/calls/{call['id']}/transitions",
        headers=_headers(manager),
        json={"target_status": "closed"},
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "submission_window_open"


@pytest.mark.asyncio
async def test_reviewer_assignment_queue_is_scoped_to_the_caller(client, workflow) -> None:
    call, (proposal,) = await workflow.closed_call_with_proposals(1)
    mine = await workflow.reviewer("Bruno Alves", ["1.01"])
    other = await workflow.reviewer("Diana Reis", ["1.01"])
    resp = await client.post(
        f"/api/v1/proposals/{proposal.id}/assignments",
        headers=_headers(workflow.manager),
        json={"reviewer_ids": [str(mine.id)]},
    )
    assert resp.status_code == 200

    resp = await client.get("/api/v1/assignments", headers=_headers(workflow.reviewer_actor(mine)))
    assert resp.status_code == 200
    (row,) = resp.json()
    assert row["proposal_id"] == str(proposal.id)
    assert row["call_id"] == str(call.id)
    assert row["review_id"] is None

    resp = await client.get(
        "/api/v1/assignments", headers=_headers(workflow.reviewer_actor(other))
    )
    assert resp.json() == []
    resp = await client.get(
        "/api/v1/assignments",
        headers=_headers(workflow.reviewer_actor(mine)),
        params={"status": "submitted"},
    )
    assert resp.json() == []
    resp = await client.get(
        "/api/v1/assignments",
        headers=_headers(workflow.reviewer_actor(mine)),
        params={"status": "lost"},
    )
    assert resp.status_code == 422
    resp = await client.get("/api/v1/assignments", headers=_headers(workflow.manager))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_rubric_is_managed_per_call_and_drives_review_scores(client, workflow) -> None:
    manager = workflow.manager
    call = await _open_call(client, manager)
    call_id = call["id"]
    base = f"/api/v1/calls/{call_id}/scoring-criteria"

    resp = await client.post(
        base, headers=_headers(manager), json={"name": "Merit", "max_score": 10, "weight": 2}
    )
    assert resp.status_code == 200
    merit = resp.json()
    resp = await client.post(base, headers=_headers(manager), json={"name": "Budget"})
    budget = resp.json()
    assert budget["sort_order"] == 1
    resp = await client.post(base, headers=_headers(manager), json={"name": "Merit"})
    assert resp.status_code == 422
    assert resp.json()["code"] == "duplicate_criterion"
    resp = await client.patch(
        f"{base}/{budget['id']}", headers=_headers(manager), json={"max_score": 5}
    )
    assert resp.status_code == 200
    assert resp.json()["max_score"] == 5
    resp = await client.post(base, headers=_headers(manager), json={"name": "Scratch"})
    resp = await client.delete(f"{base}/{resp.json()['id']}", headers=_headers(manager))
    assert resp.status_code == 200
    assert resp.json()["name"] == "Scratch"

    proposal = await _submit_proposal(client, call_id, workflow.applicant())
    resp = await client.post(
        f"/api/v1/calls/{call_id}/transitions",
        headers=_headers(manager),
        json={"target_status": "closed", "manager_override": True},
    )
    assert resp.status_code == 200
    resp = await client.post(base, headers=_headers(manager), json={"name": "Late"})
    assert resp.status_code == 409
    assert resp.json()["code"] == "criteria_locked"

    reviewer = await workflow.reviewer("Bruno Alves", ["2.03"])
    reviewer_headers = _headers(workflow.reviewer_actor(reviewer))
    resp = await client.post(
        base, headers=reviewer_headers, json={"name": "Mine", "max_score": 100}
    )
    assert resp.status_code == 403
    resp = await client.get(base, headers=reviewer_headers)
    assert [row["name"] for row in resp.json()] == ["Merit", "Budget"]

    resp = await client.post(
        f"/api/v1/proposals/{proposal['id']}/assignments",
        headers=_headers(manager),
        json={"reviewer_ids": [str(reviewer.id)]},
    )
    assignment_id = resp.json()["created"][0]["id"]
    review_url = f"/api/v1/assignments/{assignment_id}/review"

    resp = await client.put(
        review_url,
        headers=reviewer_headers,
        json={"scores": [{"criterion_id": str(uuid4()), "score": 5}]},
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "unknown_criterion"
    resp = await client.put(
        review_url,
        headers=reviewer_headers,
        json={
            "recommendation": "approved",
            "scores": [
                {"criterion_id": merit["id"], "score": 9, "comment": "Strong"},
                {"criterion_id": budget["id"], "score": 3, "max_score": 3, "weight": 50},
            ],
        },
    )
    assert resp.status_code == 200
    scores = {row["name"]: row for row in resp.json()["scores"]}
    assert scores["Budget"]["max_score"] == 5
    assert scores["Budget"]["weight"] == 1
    assert scores["Merit"]["comment"] == "Strong"

    resp = await client.post(f"{review_url}/submit", headers=reviewer_headers, json={})
    assert resp.status_code == 200
    # (9/10*10*2 + 3/5*10*1) / 3
    assert resp.json()["overall_score"] == 8.0


@pytest.mark.asyncio
async def test_reviewer_terms_gate_review_writes(client, workflow) -> None:
    call, (proposal,) = await workflow.closed_call_with_proposals(1)
    reviewer = await workflow.reviewer("Bruno Alves", ["1.01"], terms_accepted=False)
    reviewer_headers = _headers(workflow.reviewer_actor(reviewer))
    resp = await client.post(
        f"/api/v1/proposals/{proposal.id}/assignments",
        headers=_headers(workflow.manager),
        json={"reviewer_ids": [str(reviewer.id)]},
    )
    assignment_id = resp.json()["created"][0]["id"]
    review_url = f"/api/v1/assignments/{assignment_id}/review"

    resp = await client.put(review_url, headers=reviewer_headers, json={"comments": "Draft"})
    assert resp.status_code == 403
    assert resp.json()["code"] == "terms_not_accepted"

    resp = await client.get("/api/v1/reviewers/me/terms", headers=reviewer_headers)
    assert resp.json()["terms_current"] is False
    resp = await client.post(
        "/api/v1/reviewers/me/terms-acceptance",
        headers=reviewer_headers,
        json={"terms_version": "v0"},
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "terms_version_mismatch"
    resp = await client.post(
        "/api/v1/reviewers/me/terms-acceptance", headers=reviewer_headers, json={}
    )
    assert resp.status_code == 200
    accepted = resp.json()
    assert accepted["terms_current"] is True
    assert accepted["terms_version"] == accepted["current_terms_version"]

    resp = await client.put(review_url, headers=reviewer_headers, json={"comments": "Draft"})
    assert resp.status_code == 200
    resp = await client.post(
        f"{review_url}/submit",
        headers=reviewer_headers,
        json={"overall_score": 7, "recommendation": "approved"},
    )
    assert resp.status_code == 200

    resp = await client.get(
        "/api/v1/audit",
        headers=_headers(workflow.manager),
        params={"entity_id": str(reviewer.id)},
    )
    assert [item["action"] for item in resp.json()["items"]] == ["reviewer.terms_accepted"]
