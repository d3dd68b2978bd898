"""Reusable FastAPI dependencies for caller roles and scoped loading.

These dependencies are the policy wiring layer for the API. They:
- resolve the caller from upstream identity headers
- enforce the role a route requires (manager, reviewer, applicant)
- provide "load or 404" helpers that also scope every call, proposal, and
  assignment to the caller's organization

If you're adding a new endpoint, prefer composing from these dependencies instead
of re-implementing checks in the router.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import Depends

from app.core.auth import ActorContext, get_actor_context, require_manager, require_reviewer
from app.core.errors import NotFound, PermissionDenied
from app.db.session import get_session
from app.models.proposals import Proposal
from app.services.calls import get_call_or_404
from app.services.reviews import get_assignment_or_404

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.models.calls import Call
    from app.models.review_assignments import ReviewAssignment

SESSION_DEP = Depends(get_session)
ACTOR_DEP = Depends(get_actor_context)


def require_manager_actor(actor: ActorContext = ACTOR_DEP) -> ActorContext:
    """Require an organization admin or call manager."""
    return require_manager(actor)


def require_reviewer_actor(actor: ActorContext = ACTOR_DEP) -> ActorContext:
    """Require a reviewer."""
    return require_reviewer(actor)


def require_applicant_actor(actor: ActorContext = ACTOR_DEP) -> ActorContext:
    """Require an applicant (proponente)."""
    if actor.role != "proponente":
        raise PermissionDenied("Applicant role required")
    return actor


MANAGER_DEP = Depends(require_manager_actor)
REVIEWER_DEP = Depends(require_reviewer_actor)
APPLICANT_DEP = Depends(require_applicant_actor)


async def get_call_for_actor(
    call_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> Call:
    """Load a call of the caller's organization or raise 404."""
    return await get_call_or_404(
        session,
        call_id=call_id,
        organization_id=actor.organization_id,
    )


@dataclass
class ProposalContext:
    """A proposal together with its owning call."""

    proposal: Proposal
    call: Call


async def get_proposal_for_actor(
    proposal_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> ProposalContext:
    """Load a proposal whose call belongs to the caller's organization."""
    proposal = await Proposal.objects.by_id(proposal_id).first(session)
    if proposal is None:
        raise NotFound("Proposal not found")
    call = await get_call_or_404(
        session,
        call_id=proposal.call_id,
        organization_id=actor.organization_id,
    )
    return ProposalContext(proposal=proposal, call=call)


@dataclass
class AssignmentContext:
    """A review assignment with its proposal and call."""

    assignment: ReviewAssignment
    proposal: Proposal
    call: Call


async def get_assignment_for_actor(
    assignment_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> AssignmentContext:
    """Load an assignment in the caller's organization or raise 404."""
    assignment = await get_assignment_or_404(session, assignment_id=assignment_id)
    proposal = await Proposal.objects.by_id(assignment.proposal_id).first(session)
    if proposal is None:
        raise NotFound("Assignment not found")
    call = await get_call_or_404(
        session,
        call_id=proposal.call_id,
        organization_id=actor.organization_id,
    )
    return AssignmentContext(assignment=assignment, proposal=proposal, call=call)


CALL_DEP = Depends(get_call_for_actor)
PROPOSAL_DEP = Depends(get_proposal_for_actor)
ASSIGNMENT_DEP = Depends(get_assignment_for_actor)
