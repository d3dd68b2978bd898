"""Per-call scoring rubric maintained by call managers.

Reviewers only ever send a score and a comment per criterion; the scale and
weight that turn those scores into ``overall_score`` come from this table.
The rubric can be edited until the call closes for submissions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select

from app.core.errors import CriteriaLocked, NotFound, ValidationError
from app.core.logging import get_logger
from app.core.time import utcnow
from app.db.session import unit_of_work
from app.models.reviews import ReviewCriterionScore
from app.models.scoring_criteria import ScoringCriterion
from app.services.audit import record_audit
from app.services.lifecycle import CLOSED, is_at_or_after

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import ActorContext
    from app.models.calls import Call
    from app.schemas.scoring_criteria import ScoringCriterionCreate, ScoringCriterionUpdate

logger = get_logger(__name__)


def _require_editable(call: Call) -> None:
    if call.is_cancelled:
        raise ValidationError("Call is cancelled", code="call_cancelled")
    if is_at_or_after(call.lifecycle_status, CLOSED):
        raise CriteriaLocked(
            f"Scoring criteria cannot change once the call is closed (status is "
            f"{call.lifecycle_status})",
        )


def _criterion_payload(criterion: ScoringCriterion) -> dict[str, object]:
    return {
        "name": criterion.name,
        "weight": criterion.weight,
        "max_score": criterion.max_score,
        "sort_order": criterion.sort_order,
    }


async def list_scoring_criteria(session: AsyncSession, *, call_id: UUID) -> list[ScoringCriterion]:
    """Rubric of a call in display order."""
    return await ScoringCriterion.objects.filter_by(call_id=call_id).order_by(
        col(ScoringCriterion.sort_order),
        col(ScoringCriterion.name),
    ).all(session)


async def get_scoring_criterion_or_404(
    session: AsyncSession,
    *,
    call_id: UUID,
    criterion_id: UUID,
) -> ScoringCriterion:
    criterion = await ScoringCriterion.objects.by_id(criterion_id).first(session)
    if criterion is None or criterion.call_id != call_id:
        raise NotFound("Scoring criterion not found")
    return criterion


async def _next_sort_order(session: AsyncSession, *, call_id: UUID) -> int:
    stmt = select(func.max(col(ScoringCriterion.sort_order))).where(
        col(ScoringCriterion.call_id) == call_id,
    )
    current = (await session.exec(stmt)).one()
    return 0 if current is None else int(current) + 1


async def _name_taken(
    session: AsyncSession,
    *,
    call_id: UUID,
    name: str,
    exclude_id: UUID | None = None,
) -> bool:
    existing = await ScoringCriterion.objects.filter_by(call_id=call_id, name=name).first(session)
    return existing is not None and existing.id != exclude_id


async def create_scoring_criterion(
    session: AsyncSession,
    *,
    call: Call,
    actor: ActorContext,
    payload: ScoringCriterionCreate,
) -> ScoringCriterion:
    """Add a criterion to the call's rubric."""
    _require_editable(call)
    name = payload.name.strip()
    if not name:
        raise ValidationError("name must not be empty")
    if await _name_taken(session, call_id=call.id, name=name):
        raise ValidationError(f"Duplicate criterion: {name}", code="duplicate_criterion")

    sort_order = payload.sort_order
    if sort_order is None:
        sort_order = await _next_sort_order(session, call_id=call.id)
    now = utcnow()
    criterion = ScoringCriterion(
        call_id=call.id,
        name=name,
        description=payload.description,
        weight=payload.weight,
        max_score=payload.max_score,
        sort_order=sort_order,
        created_at=now,
        updated_at=now,
    )
    try:
        async with unit_of_work(session):
            session.add(criterion)
            await session.flush()
            await record_audit(
                session,
                actor=actor,
                action="call.criterion_created",
                entity_type="scoring_criterion",
                entity_id=criterion.id,
                call_id=call.id,
                payload=_criterion_payload(criterion),
                commit=False,
            )
    except IntegrityError as exc:
        await session.refresh(call)
        raise ValidationError(f"Duplicate criterion: {name}", code="duplicate_criterion") from exc
    await session.refresh(criterion)
    logger.info("call.criterion.created call_id=%s criterion_id=%s", call.id, criterion.id)
    return criterion


async def update_scoring_criterion(
    session: AsyncSession,
    *,
    call: Call,
    criterion: ScoringCriterion,
    actor: ActorContext,
    payload: ScoringCriterionUpdate,
) -> ScoringCriterion:
    """Apply the fields present in ``payload`` to a rubric criterion."""
    _require_editable(call)
    updates = payload.model_dump(exclude_unset=True)
    if "name" in updates:
        name = (updates["name"] or "").strip()
        if not name:
            raise ValidationError("name must not be empty")
        if await _name_taken(session, call_id=call.id, name=name, exclude_id=criterion.id):
            raise ValidationError(f"Duplicate criterion: {name}", code="duplicate_criterion")
        updates["name"] = name
    for key in ("weight", "max_score", "sort_order"):
        if key in updates and updates[key] is None:
            raise ValidationError(f"{key} must not be null")

    for key, value in updates.items():
        setattr(criterion, key, value)
    criterion.updated_at = utcnow()
    criterion_id = criterion.id
    async with unit_of_work(session):
        session.add(criterion)
        await record_audit(
            session,
            actor=actor,
            action="call.criterion_updated",
            entity_type="scoring_criterion",
            entity_id=criterion_id,
            call_id=call.id,
            payload={"changed": sorted(updates), **_criterion_payload(criterion)},
            commit=False,
        )
    await session.refresh(criterion)
    logger.info("call.criterion.updated call_id=%s criterion_id=%s", call.id, criterion_id)
    return criterion


async def delete_scoring_criterion(
    session: AsyncSession,
    *,
    call: Call,
    criterion: ScoringCriterion,
    actor: ActorContext,
) -> None:
    """Remove a criterion that no review has scored yet."""
    _require_editable(call)
    in_use = await ReviewCriterionScore.objects.filter_by(criterion_id=criterion.id).first(session)
    if in_use is not None:
        raise CriteriaLocked("Criterion already has review scores", code="criterion_in_use")
    criterion_id = criterion.id
    payload = _criterion_payload(criterion)
    async with unit_of_work(session):
        await session.delete(criterion)
        await record_audit(
            session,
            actor=actor,
            action="call.criterion_deleted",
            entity_type="scoring_criterion",
            entity_id=criterion_id,
            call_id=call.id,
            payload=payload,
            commit=False,
        )
    logger.info("call.criterion.deleted call_id=%s criterion_id=%s", call.id, criterion_id)
