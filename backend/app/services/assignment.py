"""Reviewer assignment engine: area-affinity ranking, manual and automatic assignment.

Ranking and distribution planning are pure functions over in-memory candidate
lists; the async helpers only load candidates and persist the chosen pairs.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select

from app.core.config import DEFAULT_AREA_MATCH_GRANULARITY, settings
from app.core.errors import NotFound, PrematureAssignment, ValidationError
from app.core.logging import get_logger
from app.core.time import utcnow
from app.db.session import unit_of_work
from app.models.proposals import Proposal
from app.models.review_assignments import ReviewAssignment
from app.models.reviewers import Reviewer, ReviewerConflict
from app.services.audit import record_audit
from app.services.lifecycle import CLOSED, is_at_or_after

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import ActorContext
    from app.models.calls import Call

logger = get_logger(__name__)

AREA_MATCH_GRANULARITY = DEFAULT_AREA_MATCH_GRANULARITY
BUCKET_ASSIGNED = "assigned"
BUCKET_RECOMMENDED = "recommended"
BUCKET_NOT_RECOMMENDED = "not_recommended"
BUCKET_CONFLICTED = "conflicted"
DISTRIBUTABLE_STATUSES = frozenset({"submitted", "under_review"})


def area_prefix(code: str | None, *, granularity: int = AREA_MATCH_GRANULARITY) -> str | None:
    """Leading classification segments of an area code.

    ``"1.01.02.00-3 Algebra"`` has segments ``1``, ``01``, ``02``, ``00``; the
    default granularity keeps only the major area ``"1"``.
    """
    if code is None:
        return None
    text = code.strip()
    if not text:
        return None
    head = text.split()[0].split("-")[0]
    segments = [segment for segment in head.split(".") if segment]
    if not segments:
        return None
    return ".".join(segments[:granularity])


def area_match(
    proposal_area: str | None,
    reviewer_areas: Iterable[str],
    *,
    granularity: int = AREA_MATCH_GRANULARITY,
) -> bool:
    """True when any reviewer area shares the proposal's coarse area prefix."""
    target = area_prefix(proposal_area, granularity=granularity)
    if target is None:
        return False
    return any(area_prefix(area, granularity=granularity) == target for area in reviewer_areas)


@dataclass(frozen=True)
class ReviewerCandidate:
    """Active reviewer with their declared areas and current open workload."""

    reviewer_id: UUID
    full_name: str
    email: str | None = None
    area_codes: tuple[str, ...] = ()
    load: int = 0


@dataclass(frozen=True)
class RankedReviewer:
    candidate: ReviewerCandidate
    bucket: str
    area_match: bool

    @property
    def selectable(self) -> bool:
        return self.bucket in {BUCKET_RECOMMENDED, BUCKET_NOT_RECOMMENDED}


@dataclass(frozen=True)
class ReviewerRanking:
    """Candidates partitioned in display priority order."""

    assigned: tuple[RankedReviewer, ...] = ()
    recommended: tuple[RankedReviewer, ...] = ()
    not_recommended: tuple[RankedReviewer, ...] = ()
    conflicted: tuple[RankedReviewer, ...] = ()

    def ordered(self) -> list[RankedReviewer]:
        return [*self.assigned, *self.recommended, *self.not_recommended, *self.conflicted]


def _by_load_then_name(item: RankedReviewer) -> tuple[int, str, str]:
    return (item.candidate.load, item.candidate.full_name.lower(), str(item.candidate.reviewer_id))


def rank_reviewers(
    *,
    proposal_area: str | None,
    candidates: Sequence[ReviewerCandidate],
    assigned_ids: Iterable[UUID] = (),
    conflicted_ids: Iterable[UUID] = (),
    granularity: int = AREA_MATCH_GRANULARITY,
) -> ReviewerRanking:
    """Partition candidates into assigned / recommended / not-recommended buckets.

    Conflicted reviewers who are not already assigned are kept apart and are
    never selectable. Within a bucket, lighter workload sorts first.
    """
    assigned = set(assigned_ids)
    conflicted = set(conflicted_ids)
    buckets: dict[str, list[RankedReviewer]] = {
        BUCKET_ASSIGNED: [],
        BUCKET_RECOMMENDED: [],
        BUCKET_NOT_RECOMMENDED: [],
        BUCKET_CONFLICTED: [],
    }
    for candidate in candidates:
        matches = area_match(proposal_area, candidate.area_codes, granularity=granularity)
        if candidate.reviewer_id in assigned:
            bucket = BUCKET_ASSIGNED
        elif candidate.reviewer_id in conflicted:
            bucket = BUCKET_CONFLICTED
        elif matches:
            bucket = BUCKET_RECOMMENDED
        else:
            bucket = BUCKET_NOT_RECOMMENDED
        buckets[bucket].append(RankedReviewer(candidate=candidate, bucket=bucket, area_match=matches))

    return ReviewerRanking(
        assigned=tuple(sorted(buckets[BUCKET_ASSIGNED], key=_by_load_then_name)),
        recommended=tuple(sorted(buckets[BUCKET_RECOMMENDED], key=_by_load_then_name)),
        not_recommended=tuple(sorted(buckets[BUCKET_NOT_RECOMMENDED], key=_by_load_then_name)),
        conflicted=tuple(sorted(buckets[BUCKET_CONFLICTED], key=_by_load_then_name)),
    )


@dataclass(frozen=True)
class DistributionTarget:
    """Proposal awaiting reviewers, as seen by the distribution planner."""

    proposal_id: UUID
    knowledge_area_code: str | None = None
    assigned_ids: frozenset[UUID] = frozenset()
    conflicted_ids: frozenset[UUID] = frozenset()


@dataclass
class DistributionPlan:
    pairs: list[tuple[UUID, UUID]] = field(default_factory=list)
    completed: int = 0
    pending: int = 0


def plan_distribution(
    *,
    targets: Sequence[DistributionTarget],
    candidates: Sequence[ReviewerCandidate],
    min_reviewers: int,
    granularity: int = AREA_MATCH_GRANULARITY,
) -> DistributionPlan:
    """Fill each proposal up to ``min_reviewers``: area match first, then lightest load.

    Loads are updated as pairs are planned so later proposals see earlier picks.
    Proposals already at the minimum are skipped and not counted.
    """
    plan = DistributionPlan()
    loads = {candidate.reviewer_id: candidate.load for candidate in candidates}
    for target in targets:
        needed = min_reviewers - len(target.assigned_ids)
        if needed <= 0:
            continue
        eligible = [
            candidate
            for candidate in candidates
            if candidate.reviewer_id not in target.assigned_ids
            and candidate.reviewer_id not in target.conflicted_ids
        ]
        eligible.sort(
            key=lambda candidate: (
                0
                if area_match(
                    target.knowledge_area_code,
                    candidate.area_codes,
                    granularity=granularity,
                )
                else 1,
                loads[candidate.reviewer_id],
                candidate.full_name.lower(),
                str(candidate.reviewer_id),
            ),
        )
        chosen = eligible[:needed]
        if not chosen:
            plan.pending += 1
            continue
        for candidate in chosen:
            plan.pairs.append((target.proposal_id, candidate.reviewer_id))
            loads[candidate.reviewer_id] += 1
        if len(chosen) >= needed:
            plan.completed += 1
        else:
            plan.pending += 1
    return plan


def _require_assignable(call: Call) -> None:
    if not is_at_or_after(call.lifecycle_status, CLOSED, is_cancelled=call.is_cancelled):
        raise PrematureAssignment(
            f"Reviewers can only be assigned once the call is closed (status is {call.lifecycle_status})",
        )


async def load_candidates(
    session: AsyncSession,
    *,
    organization_id: UUID,
) -> list[ReviewerCandidate]:
    """Active reviewers of an organization with their open assignment counts."""
    reviewers = await Reviewer.objects.filter_by(
        organization_id=organization_id,
        is_active=True,
    ).all(session)
    if not reviewers:
        return []
    load_stmt = (
        select(col(ReviewAssignment.reviewer_id), func.count())
        .where(col(ReviewAssignment.reviewer_id).in_([r.id for r in reviewers]))
        .where(col(ReviewAssignment.status) == "assigned")
        .group_by(col(ReviewAssignment.reviewer_id))
    )
    loads = {reviewer_id: int(count) for reviewer_id, count in (await session.exec(load_stmt)).all()}
    return [
        ReviewerCandidate(
            reviewer_id=reviewer.id,
            full_name=reviewer.full_name,
            email=reviewer.email,
            area_codes=tuple(reviewer.area_codes or ()),
            load=loads.get(reviewer.id, 0),
        )
        for reviewer in reviewers
    ]


async def _assigned_reviewer_ids(session: AsyncSession, *, proposal_id: UUID) -> set[UUID]:
    rows = await ReviewAssignment.objects.filter_by(proposal_id=proposal_id).all(session)
    return {row.reviewer_id for row in rows}


async def _conflicted_reviewer_ids(session: AsyncSession, *, proposal_id: UUID) -> set[UUID]:
    rows = await ReviewerConflict.objects.filter_by(proposal_id=proposal_id).all(session)
    return {row.reviewer_id for row in rows}


async def rank_reviewers_for_proposal(
    session: AsyncSession,
    *,
    proposal: Proposal,
    organization_id: UUID,
    granularity: int | None = None,
) -> ReviewerRanking:
    """Load the reviewer pool for ``proposal`` and rank it."""
    candidates = await load_candidates(session, organization_id=organization_id)
    return rank_reviewers(
        proposal_area=proposal.knowledge_area_code,
        candidates=candidates,
        assigned_ids=await _assigned_reviewer_ids(session, proposal_id=proposal.id),
        conflicted_ids=await _conflicted_reviewer_ids(session, proposal_id=proposal.id),
        granularity=granularity or settings.area_match_granularity,
    )


@dataclass(frozen=True)
class AssignmentResult:
    created: tuple[ReviewAssignment, ...]
    skipped_ids: tuple[UUID, ...]


async def assign_reviewers(
    session: AsyncSession,
    *,
    proposal: Proposal,
    call: Call,
    reviewer_ids: Sequence[UUID],
    actor: ActorContext,
    _retry: bool = True,
) -> AssignmentResult:
    """Assign reviewers to a proposal; already-assigned pairs are silently skipped."""
    _require_assignable(call)
    requested = list(dict.fromkeys(reviewer_ids))
    if not requested:
        raise ValidationError("reviewer_ids must not be empty")

    reviewers = await Reviewer.objects.filter(col(Reviewer.id).in_(requested)).all(session)
    found = {reviewer.id: reviewer for reviewer in reviewers}
    for reviewer_id in requested:
        reviewer = found.get(reviewer_id)
        if reviewer is None or reviewer.organization_id != call.organization_id:
            raise NotFound(f"Reviewer {reviewer_id} not found")
        if not reviewer.is_active:
            raise ValidationError(f"Reviewer {reviewer_id} is inactive", code="reviewer_inactive")

    conflicted = await _conflicted_reviewer_ids(session, proposal_id=proposal.id)
    blocked = [reviewer_id for reviewer_id in requested if reviewer_id in conflicted]
    if blocked:
        raise ValidationError(
            f"Reviewer {blocked[0]} has a declared conflict with this proposal",
            code="reviewer_conflict",
        )

    already = await _assigned_reviewer_ids(session, proposal_id=proposal.id)
    new_ids = [reviewer_id for reviewer_id in requested if reviewer_id not in already]
    skipped = tuple(reviewer_id for reviewer_id in requested if reviewer_id in already)
    if not new_ids:
        logger.info("proposal.assign.noop proposal_id=%s", proposal.id)
        return AssignmentResult(created=(), skipped_ids=skipped)

    now = utcnow()
    created = [
        ReviewAssignment(
            proposal_id=proposal.id,
            reviewer_id=reviewer_id,
            status="assigned",
            assigned_by=actor.actor_id,
            created_at=now,
        )
        for reviewer_id in new_ids
    ]
    try:
        async with unit_of_work(session):
            for assignment in created:
                session.add(assignment)
            await session.flush()
            if proposal.status == "submitted":
                proposal.status = "under_review"
                proposal.updated_at = now
                session.add(proposal)
            await record_audit(
                session,
                actor=actor,
                action="proposal.reviewers_assigned",
                entity_type="proposal",
                entity_id=proposal.id,
                call_id=call.id,
                payload={
                    "reviewer_count": len(created),
                    "call_id": str(call.id),
                    "blind_code": proposal.blind_code,
                },
                commit=False,
            )
    except IntegrityError:
        # A concurrent request inserted one of the same pairs first.
        await session.refresh(proposal)
        await session.refresh(call)
        if not _retry:
            raise
        logger.info("proposal.assign.retry proposal_id=%s", proposal.id)
        return await assign_reviewers(
            session,
            proposal=proposal,
            call=call,
            reviewer_ids=requested,
            actor=actor,
            _retry=False,
        )

    await session.refresh(proposal)
    logger.info(
        "proposal.assign.applied proposal_id=%s created=%s skipped=%s",
        proposal.id,
        len(created),
        len(skipped),
    )
    return AssignmentResult(created=tuple(created), skipped_ids=skipped)


async def declare_conflict(
    session: AsyncSession,
    *,
    proposal: Proposal,
    call: Call,
    reviewer_id: UUID,
    reason: str,
    actor: ActorContext,
) -> ReviewerConflict:
    """Record that ``reviewer_id`` must not evaluate ``proposal``."""
    reviewer = await Reviewer.objects.by_id(reviewer_id).first(session)
    if reviewer is None or reviewer.organization_id != call.organization_id:
        raise NotFound(f"Reviewer {reviewer_id} not found")
    if reviewer_id in await _assigned_reviewer_ids(session, proposal_id=proposal.id):
        raise ValidationError(
            "Reviewer is already assigned to this proposal",
            code="reviewer_already_assigned",
        )
    existing = await ReviewerConflict.objects.filter_by(
        proposal_id=proposal.id,
        reviewer_id=reviewer_id,
    ).first(session)
    if existing is not None:
        return existing

    conflict = ReviewerConflict(
        call_id=call.id,
        proposal_id=proposal.id,
        reviewer_id=reviewer_id,
        reason=reason.strip(),
        declared_by=actor.actor_id,
    )
    async with unit_of_work(session):
        session.add(conflict)
        await session.flush()
        await record_audit(
            session,
            actor=actor,
            action="proposal.conflict_declared",
            entity_type="proposal",
            entity_id=proposal.id,
            call_id=call.id,
            payload={"reviewer_id": str(reviewer_id), "reason": conflict.reason},
            commit=False,
        )
    await session.refresh(conflict)
    return conflict


async def auto_distribute(
    session: AsyncSession,
    *,
    call: Call,
    actor: ActorContext,
    min_reviewers: int | None = None,
) -> DistributionPlan:
    """Assign reviewers to every submitted proposal of a call in one transaction."""
    _require_assignable(call)
    target_count = (
        min_reviewers or call.min_reviewers_per_proposal or settings.min_reviewers_per_proposal
    )
    proposals = await Proposal.objects.filter(
        col(Proposal.call_id) == call.id,
        col(Proposal.status).in_(sorted(DISTRIBUTABLE_STATUSES)),
    ).order_by(col(Proposal.blind_code)).all(session)
    targets = [
        DistributionTarget(
            proposal_id=proposal.id,
            knowledge_area_code=proposal.knowledge_area_code,
            assigned_ids=frozenset(await _assigned_reviewer_ids(session, proposal_id=proposal.id)),
            conflicted_ids=frozenset(
                await _conflicted_reviewer_ids(session, proposal_id=proposal.id),
            ),
        )
        for proposal in proposals
    ]
    candidates = await load_candidates(session, organization_id=call.organization_id)
    plan = plan_distribution(
        targets=targets,
        candidates=candidates,
        min_reviewers=target_count,
        granularity=settings.area_match_granularity,
    )

    now = utcnow()
    touched = Counter(proposal_id for proposal_id, _ in plan.pairs)
    async with unit_of_work(session):
        for proposal_id, reviewer_id in plan.pairs:
            session.add(
                ReviewAssignment(
                    proposal_id=proposal_id,
                    reviewer_id=reviewer_id,
                    status="assigned",
                    assigned_by=actor.actor_id,
                    created_at=now,
                ),
            )
        for proposal in proposals:
            if touched[proposal.id] and proposal.status == "submitted":
                proposal.status = "under_review"
                proposal.updated_at = now
                session.add(proposal)
        await record_audit(
            session,
            actor=actor,
            action="call.auto_distribution",
            entity_type="call",
            entity_id=call.id,
            call_id=call.id,
            payload={
                "completed": plan.completed,
                "pending": plan.pending,
                "assignments_created": len(plan.pairs),
                "min_reviewers": target_count,
            },
            commit=False,
        )
    logger.info(
        "call.auto_distribution call_id=%s created=%s completed=%s pending=%s",
        call.id,
        len(plan.pairs),
        plan.completed,
        plan.pending,
    )
    return plan
