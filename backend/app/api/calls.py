"""Call lifecycle endpoints: creation, transitions, timeline, and call-wide actions."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter

from app.api.deps import (
    ACTOR_DEP,
    APPLICANT_DEP,
    CALL_DEP,
    MANAGER_DEP,
    SESSION_DEP,
)
from app.core.errors import PermissionDenied
from app.schemas.calls import (
    AllowedTransitionRead,
    AutoDistributionRead,
    AutoDistributionRequest,
    CallCreate,
    CallDetailRead,
    CallRead,
    TimelineEntryRead,
    TimelinePhaseRead,
    TimelineRead,
    TransitionRequest,
)
from app.schemas.proposals import BlindProposalRead, ProposalCreate, ProposalOwnerRead
from app.schemas.reveals import IdentityRevealRequest, RevealedIdentityRead
from app.schemas.scoring_criteria import (
    ScoringCriterionCreate,
    ScoringCriterionRead,
    ScoringCriterionUpdate,
)
from app.services.assignment import auto_distribute
from app.services.blind_identity import create_proposal, list_blind_proposals
from app.services.calls import create_call
from app.services.identity_reveal import reveal_identities
from app.services.lifecycle import allowed_transitions, load_call_timeline, transition_call
from app.services.scoring_criteria import (
    create_scoring_criterion,
    delete_scoring_criterion,
    get_scoring_criterion_or_404,
    list_scoring_criteria,
    update_scoring_criterion,
)

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import ActorContext
    from app.models.calls import Call

router = APIRouter(prefix="/calls", tags=["calls"])


def _call_detail(call: Call) -> CallDetailRead:
    model = CallDetailRead.model_validate(call, from_attributes=True)
    model.allowed_transitions = [
        AllowedTransitionRead(status=phase.status, label=phase.label, description=phase.description)
        for phase in allowed_transitions(call.lifecycle_status, is_cancelled=call.is_cancelled)
    ]
    return model


@router.post("", response_model=CallRead)
async def create_call_endpoint(
    payload: CallCreate,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = MANAGER_DEP,
) -> CallRead:
    """Create a call in ``draft``."""
    call = await create_call(session, actor=actor, payload=payload)
    return CallRead.model_validate(call, from_attributes=True)


@router.get("/{call_id}", response_model=CallDetailRead)
async def get_call(
    call: Call = CALL_DEP,
) -> CallDetailRead:
    """Return a call with the transitions currently on offer."""
    return _call_detail(call)


@router.post("/{call_id}/transitions", response_model=CallDetailRead)
async def transition_call_endpoint(
    payload: TransitionRequest,
    call: Call = CALL_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = MANAGER_DEP,
) -> CallDetailRead:
    """Advance a call to its next phase or cancel it."""
    updated = await transition_call(
        session,
        call=call,
        target_status=payload.target_status,
        actor=actor,
        manager_override=payload.manager_override,
        cancellation_reason=payload.cancellation_reason,
    )
    return _call_detail(updated)


@router.get("/{call_id}/timeline", response_model=TimelineRead)
async def get_call_timeline(
    call: Call = CALL_DEP,
    session: AsyncSession = SESSION_DEP,
    _actor: ActorContext = MANAGER_DEP,
) -> TimelineRead:
    """Phase-by-phase history of the call rebuilt from its audit trail."""
    timeline = await load_call_timeline(session, call=call)
    return TimelineRead(
        call_id=call.id,
        lifecycle_status=call.lifecycle_status,
        is_cancelled=timeline.is_cancelled,
        cancelled_at=timeline.cancelled_at,
        cancellation_reason=timeline.cancellation_reason,
        phases=[
            TimelinePhaseRead(
                status=phase.status,
                label=phase.label,
                description=phase.description,
                state=phase.state,
                timestamp=phase.timestamp,
                entries=[
                    TimelineEntryRead.model_validate(entry, from_attributes=True)
                    for entry in phase.entries
                ],
            )
            for phase in timeline.phases
        ],
    )


@router.get("/{call_id}/proposals", response_model=list[BlindProposalRead])
async def list_call_proposals(
    call: Call = CALL_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> list[BlindProposalRead]:
    """Identity-free proposal listing; reviewers only see their assignments."""
    if actor.is_manager:
        rows = await list_blind_proposals(session, call_id=call.id)
    elif actor.role == "reviewer":
        rows = await list_blind_proposals(session, call_id=call.id, reviewer_id=actor.actor_id)
    else:
        raise PermissionDenied("Manager or reviewer role required")
    return [BlindProposalRead.model_validate(row, from_attributes=True) for row in rows]


@router.post("/{call_id}/proposals", response_model=ProposalOwnerRead)
async def create_call_proposal(
    payload: ProposalCreate,
    call: Call = CALL_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = APPLICANT_DEP,
) -> ProposalOwnerRead:
    """Start a draft proposal; its blind code is assigned immediately."""
    proposal = await create_proposal(session, call=call, actor=actor, payload=payload)
    return ProposalOwnerRead.model_validate(proposal, from_attributes=True)


@router.post("/{call_id}/auto-distribution", response_model=AutoDistributionRead)
async def auto_distribute_call(
    payload: AutoDistributionRequest,
    call: Call = CALL_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = MANAGER_DEP,
) -> AutoDistributionRead:
    """Fill every submitted proposal up to the minimum reviewer count."""
    plan = await auto_distribute(
        session,
        call=call,
        actor=actor,
        min_reviewers=payload.min_reviewers,
    )
    return AutoDistributionRead(
        assignments_created=len(plan.pairs),
        completed=plan.completed,
        pending=plan.pending,
    )


@router.post("/{call_id}/identity-reveals", response_model=list[RevealedIdentityRead])
async def reveal_call_identities(
    payload: IdentityRevealRequest,
    call: Call = CALL_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = MANAGER_DEP,
) -> list[RevealedIdentityRead]:
    """Reveal the applicants behind a batch of proposals; all or nothing."""
    revealed = await reveal_identities(
        session,
        call=call,
        proposal_ids=payload.proposal_ids,
        reason=payload.reason,
        actor=actor,
    )
    return [RevealedIdentityRead.model_validate(item, from_attributes=True) for item in revealed]


@router.get("/{call_id}/scoring-criteria", response_model=list[ScoringCriterionRead])
async def list_call_scoring_criteria(
    call: Call = CALL_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> list[ScoringCriterionRead]:
    """Return the call's rubric in display order."""
    if not actor.is_manager and actor.role != "reviewer":
        raise PermissionDenied("Manager or reviewer role required")
    rows = await list_scoring_criteria(session, call_id=call.id)
    return [ScoringCriterionRead.model_validate(row, from_attributes=True) for row in rows]


@router.post("/{call_id}/scoring-criteria", response_model=ScoringCriterionRead)
async def create_call_scoring_criterion(
    payload: ScoringCriterionCreate,
    call: Call = CALL_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = MANAGER_DEP,
) -> ScoringCriterionRead:
    """Add a criterion to the rubric; allowed until the call closes."""
    criterion = await create_scoring_criterion(session, call=call, actor=actor, payload=payload)
    return ScoringCriterionRead.model_validate(criterion, from_attributes=True)


@router.patch(
    "/{call_id}/scoring-criteria/{criterion_id}",
    response_model=ScoringCriterionRead,
)
async def update_call_scoring_criterion(
    criterion_id: UUID,
    payload: ScoringCriterionUpdate,
    call: Call = CALL_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = MANAGER_DEP,
) -> ScoringCriterionRead:
    """Change a criterion's name, description, weight, scale, or position."""
    criterion = await get_scoring_criterion_or_404(
        session,
        call_id=call.id,
        criterion_id=criterion_id,
    )
    updated = await update_scoring_criterion(
        session,
        call=call,
        criterion=criterion,
        actor=actor,
        payload=payload,
    )
    return ScoringCriterionRead.model_validate(updated, from_attributes=True)


@router.delete(
    "/{call_id}/scoring-criteria/{criterion_id}",
    response_model=ScoringCriterionRead,
)
async def delete_call_scoring_criterion(
    criterion_id: UUID,
    call: Call = CALL_DEP,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = MANAGER_DEP,
) -> ScoringCriterionRead:
    """Remove a criterion from the rubric and return it."""
    criterion = await get_scoring_criterion_or_404(
        session,
        call_id=call.id,
        criterion_id=criterion_id,
    )
    removed = ScoringCriterionRead.model_validate(criterion, from_attributes=True)
    await delete_scoring_criterion(session, call=call, criterion=criterion, actor=actor)
    return removed
