# ruff: noqa: INP001
"""Pytest configuration shared across backend tests."""

from __future__ import annotations

import os
import sys
from datetime import timedelta
from pathlib import Path
from uuid import UUID, uuid4

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Deterministic settings during import-time initialization, regardless of shell env.
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DB_AUTO_MIGRATE"] = "false"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from app import models  # noqa: F401
from app.core.auth import ActorContext
from app.core.config import settings
from app.core.time import utcnow
from app.models.calls import Call
from app.models.proposals import Proposal
from app.models.reviewers import Reviewer
from app.models.scoring_criteria import ScoringCriterion
from app.schemas.calls import CallCreate
from app.schemas.proposals import ProposalCreate
from app.schemas.scoring_criteria import ScoringCriterionCreate
from app.services.blind_identity import create_proposal, submit_proposal
from app.services.calls import create_call
from app.services.lifecycle import CLOSED, PUBLISHED, transition_call
from app.services.scoring_criteria import create_scoring_criterion


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session


class WorkflowBuilder:
    """Seeds calls, reviewers, and proposals through the real services."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.organization_id = uuid4()
        self.manager = ActorContext(
            actor_id=uuid4(),
            role="edital_manager",
            organization_id=self.organization_id,
        )

    def applicant(self) -> ActorContext:
        return ActorContext(
            actor_id=uuid4(),
            role="proponente",
            organization_id=self.organization_id,
        )

    def reviewer_actor(self, reviewer: Reviewer) -> ActorContext:
        return ActorContext(
            actor_id=reviewer.id,
            role="reviewer",
            organization_id=self.organization_id,
        )

    async def call(self, **overrides: object) -> Call:
        now = utcnow()
        values: dict[str, object] = {
            "title": "Research Support Call 2026",
            "opens_at": now - timedelta(days=1),
            "closes_at": now + timedelta(days=7),
        }
        values.update(overrides)
        return await create_call(
            self.session,
            actor=self.manager,
            payload=CallCreate(**values),
        )

    async def publish(self, call: Call) -> Call:
        return await transition_call(
            self.session,
            call=call,
            target_status=PUBLISHED,
            actor=self.manager,
        )

    async def close(self, call: Call) -> Call:
        return await transition_call(
            self.session,
            call=call,
            target_status=CLOSED,
            actor=self.manager,
            manager_override=True,
        )

    async def reviewer(
        self,
        full_name: str,
        areas: list[str] | None = None,
        *,
        is_active: bool = True,
        reviewer_id: UUID | None = None,
        terms_accepted: bool = True,
    ) -> Reviewer:
        reviewer = Reviewer(
            id=reviewer_id or uuid4(),
            organization_id=self.organization_id,
            full_name=full_name,
            email=f"{full_name.lower().replace(' ', '.')}@example.org",
            area_codes=areas or [],
            is_active=is_active,
            terms_accepted_at=utcnow() if terms_accepted else None,
            terms_version=settings.reviewer_terms_version if terms_accepted else None,
        )
        self.session.add(reviewer)
        await self.session.commit()
        await self.session.refresh(reviewer)
        return reviewer

    async def proposal(
        self,
        call: Call,
        *,
        area: str | None = "1.01.02.00-3",
        applicant_name: str = "Ana Souza",
        submit: bool = True,
    ) -> Proposal:
        applicant = self.applicant()
        proposal = await create_proposal(
            self.session,
            call=call,
            actor=applicant,
            payload=ProposalCreate(
                knowledge_area_code=area,
                answers={"summary": "Soil microbiome study"},
                applicant_name=applicant_name,
                applicant_email=f"{applicant_name.lower().replace(' ', '.')}@uni.example",
                institution="Federal University",
            ),
        )
        if submit:
            proposal = await submit_proposal(
                self.session,
                proposal=proposal,
                call=call,
                actor=applicant,
            )
        return proposal

    async def criterion(
        self,
        call: Call,
        name: str,
        *,
        max_score: float = 10.0,
        weight: float = 1.0,
    ) -> ScoringCriterion:
        return await create_scoring_criterion(
            self.session,
            call=call,
            actor=self.manager,
            payload=ScoringCriterionCreate(name=name, max_score=max_score, weight=weight),
        )

    async def closed_call_with_proposals(
        self,
        count: int = 1,
        *,
        criteria: list[tuple[str, float, float]] | None = None,
        **overrides: object,
    ):
        """Closed call with ``count`` submitted proposals.

        ``criteria`` holds ``(name, max_score, weight)`` rubric lines created
        while the call is still editable.
        """
        call = await self.call(**overrides)
        for name, max_score, weight in criteria or []:
            await self.criterion(call, name, max_score=max_score, weight=weight)
        call = await self.publish(call)
        proposals = [await self.proposal(call) for _ in range(count)]
        call = await self.close(call)
        return call, proposals


@pytest.fixture
def workflow(session) -> WorkflowBuilder:
    return WorkflowBuilder(session)
