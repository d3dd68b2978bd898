"""Call lifecycle state machine and audit-driven timeline reconstruction.

The phase table ``WORKFLOW_PHASES`` is the single place that defines phase
order, labels, descriptions and entry guards. ``evaluate_transition`` is a pure
function over ``(current, target, context)``; ``transition_call`` applies its
outcome with an optimistic version check so concurrent attempts on the same
call cannot both succeed.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, update
from sqlmodel import col, select

from app.core.errors import InvalidTransition
from app.core.logging import get_logger
from app.core.time import as_naive_utc, utcnow
from app.db.session import unit_of_work
from app.models.audit_entries import AuditEntry
from app.models.calls import Call
from app.models.proposals import Proposal
from app.models.review_assignments import ReviewAssignment
from app.services.audit import record_audit

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import ActorContext

logger = get_logger(__name__)

DRAFT = "draft"
PUBLISHED = "published"
CLOSED = "closed"
UNDER_REVIEW = "under_review"
PRELIMINARY_RESULT = "preliminary_result"
FINAL_RESULT = "final_result"
HOMOLOGATED = "homologated"
GRANTED = "granted"
CANCELLED = "cancelled"

TIMELINE_COMPLETED = "completed"
TIMELINE_CURRENT = "current"
TIMELINE_FUTURE = "future"


@dataclass(frozen=True)
class TransitionContext:
    """Facts the phase guards need, gathered by the caller."""

    now: datetime
    title: str = ""
    opens_at: datetime | None = None
    closes_at: datetime | None = None
    assignment_count: int = 0
    manager_override: bool = False
    cancellation_reason: str | None = None


@dataclass(frozen=True)
class GuardViolation:
    code: str
    message: str


Guard = Callable[[TransitionContext], GuardViolation | None]


@dataclass(frozen=True)
class Phase:
    """One lifecycle phase with the guard that must hold to enter it."""

    status: str
    label: str
    description: str
    guard: Guard | None = field(default=None, compare=False)


@dataclass(frozen=True)
class TransitionOutcome:
    from_status: str
    to_status: str


def _guard_publish(ctx: TransitionContext) -> GuardViolation | None:
    if not ctx.title.strip():
        return GuardViolation("missing_title", "A call needs a title before publishing")
    if ctx.closes_at is None:
        return GuardViolation(
            "missing_deadline",
            "A call needs a submission deadline (closes_at) before publishing",
        )
    if ctx.opens_at is not None and ctx.opens_at >= ctx.closes_at:
        return GuardViolation("invalid_window", "opens_at must be before closes_at")
    return None


def _guard_close(ctx: TransitionContext) -> GuardViolation | None:
    if ctx.manager_override:
        return None
    if ctx.closes_at is None or ctx.now < ctx.closes_at:
        return GuardViolation(
            "submission_window_open",
            "Submissions are still open; wait for closes_at or close with a manager override",
        )
    return None


def _guard_review(ctx: TransitionContext) -> GuardViolation | None:
    if ctx.assignment_count < 1:
        return GuardViolation(
            "no_assignments",
            "At least one reviewer assignment is required to start the review",
        )
    return None


def _guard_cancel(ctx: TransitionContext) -> GuardViolation | None:
    if not (ctx.cancellation_reason or "").strip():
        return GuardViolation("missing_cancellation_reason", "Cancelling a call requires a reason")
    return None


WORKFLOW_PHASES: tuple[Phase, ...] = (
    Phase(DRAFT, "Draft", "Call is being prepared and is not visible to applicants."),
    Phase(
        PUBLISHED,
        "Published",
        "Call is public; applicants submit between opens_at and closes_at.",
        _guard_publish,
    ),
    Phase(CLOSED, "Closed", "New submissions are blocked.", _guard_close),
    Phase(
        UNDER_REVIEW,
        "Under review",
        "Blind review of the submitted proposals is in progress.",
        _guard_review,
    ),
    Phase(
        PRELIMINARY_RESULT,
        "Preliminary result",
        "Preliminary result is published and the appeal period is open.",
    ),
    Phase(FINAL_RESULT, "Final result", "Final ranking is frozen after appeals."),
    Phase(
        HOMOLOGATED,
        "Homologated",
        "Result is officially homologated; approved proposals may be granted.",
    ),
    Phase(GRANTED, "Granted", "Grant terms are signed and projects may start."),
)
CANCELLED_PHASE = Phase(
    CANCELLED,
    "Cancelled",
    "Call is permanently cancelled.",
    _guard_cancel,
)
PHASE_ORDER: tuple[str, ...] = tuple(phase.status for phase in WORKFLOW_PHASES)


def phase_index(status: str, *, phases: Sequence[Phase] = WORKFLOW_PHASES) -> int | None:
    """Position of ``status`` in the forward order, ``None`` for cancelled/unknown."""
    for index, phase in enumerate(phases):
        if phase.status == status:
            return index
    return None


def is_at_or_after(
    status: str,
    reference: str,
    *,
    is_cancelled: bool = False,
    phases: Sequence[Phase] = WORKFLOW_PHASES,
) -> bool:
    """Whether a (non-cancelled) call has reached ``reference`` or a later phase."""
    if is_cancelled or status == CANCELLED:
        return False
    current = phase_index(status, phases=phases)
    target = phase_index(reference, phases=phases)
    if current is None or target is None:
        return False
    return current >= target


def is_terminal(status: str, *, phases: Sequence[Phase] = WORKFLOW_PHASES) -> bool:
    return status == CANCELLED or (len(phases) > 0 and phases[-1].status == status)


def evaluate_transition(
    current_status: str,
    target_status: str,
    context: TransitionContext,
    *,
    is_cancelled: bool = False,
    phases: Sequence[Phase] = WORKFLOW_PHASES,
) -> TransitionOutcome:
    """Validate a requested move and return its outcome or raise ``InvalidTransition``."""
    if is_cancelled or current_status == CANCELLED:
        raise InvalidTransition("Call is cancelled", code="call_cancelled")
    current = phase_index(current_status, phases=phases)
    if current is None:
        raise InvalidTransition(f"Unknown current status: {current_status}", code="unknown_status")
    if is_terminal(current_status, phases=phases):
        raise InvalidTransition(f"Call is already {current_status}", code="terminal_state")

    if target_status == CANCELLED:
        target_phase = CANCELLED_PHASE
    else:
        target = phase_index(target_status, phases=phases)
        if target is None:
            raise InvalidTransition(f"Unknown target status: {target_status}", code="unknown_status")
        if target <= current:
            raise InvalidTransition(
                f"Cannot move backwards from {current_status} to {target_status}",
                code="backward_transition",
            )
        if target != current + 1:
            raise InvalidTransition(
                f"{target_status} is not the next phase after {current_status}",
                code="skipped_phase",
            )
        target_phase = phases[target]

    if target_phase.guard is not None:
        violation = target_phase.guard(context)
        if violation is not None:
            raise InvalidTransition(violation.message, code=violation.code)
    return TransitionOutcome(from_status=current_status, to_status=target_phase.status)


def allowed_transitions(
    current_status: str,
    *,
    is_cancelled: bool = False,
    phases: Sequence[Phase] = WORKFLOW_PHASES,
) -> list[Phase]:
    """Phases a manager may request next, ignoring guards (menu options)."""
    if is_cancelled or is_terminal(current_status, phases=phases):
        return []
    current = phase_index(current_status, phases=phases)
    if current is None:
        return []
    return [phases[current + 1], CANCELLED_PHASE]


async def count_call_assignments(session: AsyncSession, *, call_id: object) -> int:
    """Number of review assignments across all proposals of a call."""
    stmt = (
        select(func.count())
        .select_from(ReviewAssignment)
        .join(Proposal, col(Proposal.id) == col(ReviewAssignment.proposal_id))
        .where(col(Proposal.call_id) == call_id)
    )
    result = await session.exec(stmt)
    return int(result.one())


async def transition_call(
    session: AsyncSession,
    *,
    call: Call,
    target_status: str,
    actor: ActorContext,
    manager_override: bool = False,
    cancellation_reason: str | None = None,
    now: datetime | None = None,
) -> Call:
    """Advance (or cancel) a call, persisting the status and its audit entry atomically."""
    now = as_naive_utc(now) or utcnow()
    assignment_count = 0
    if target_status == UNDER_REVIEW:
        assignment_count = await count_call_assignments(session, call_id=call.id)
    context = TransitionContext(
        now=now,
        title=call.title,
        opens_at=call.opens_at,
        closes_at=call.closes_at,
        assignment_count=assignment_count,
        manager_override=manager_override,
        cancellation_reason=cancellation_reason,
    )
    try:
        outcome = evaluate_transition(
            call.lifecycle_status,
            target_status,
            context,
            is_cancelled=call.is_cancelled,
        )
    except InvalidTransition as exc:
        logger.info(
            "call.transition.rejected call_id=%s from=%s to=%s code=%s",
            call.id,
            call.lifecycle_status,
            target_status,
            exc.code,
        )
        raise

    values: dict[str, object] = {
        "lifecycle_status": outcome.to_status,
        "version": call.version + 1,
        "updated_at": now,
    }
    if outcome.to_status == CANCELLED:
        values["is_cancelled"] = True
        values["cancellation_reason"] = (cancellation_reason or "").strip()

    stmt = (
        update(Call)
        .where(
            col(Call.id) == call.id,
            col(Call.version) == call.version,
            col(Call.lifecycle_status) == outcome.from_status,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    payload: dict[str, object] = {
        "from_status": outcome.from_status,
        "to_status": outcome.to_status,
        "actor": str(actor.actor_id),
    }
    if manager_override:
        payload["manager_override"] = True
    if outcome.to_status == CANCELLED:
        payload["cancellation_reason"] = values["cancellation_reason"]

    try:
        async with unit_of_work(session):
            result = await session.execute(stmt)
            if result.rowcount != 1:
                raise InvalidTransition(
                    "Call changed concurrently; reload and retry",
                    code="stale_state",
                )
            await record_audit(
                session,
                actor=actor,
                action="call.transition",
                entity_type="call",
                entity_id=call.id,
                call_id=call.id,
                payload=payload,
                commit=False,
            )
    except InvalidTransition:
        await session.refresh(call)
        logger.warning(
            "call.transition.stale call_id=%s observed_status=%s",
            call.id,
            call.lifecycle_status,
        )
        raise
    except Exception:
        await session.refresh(call)
        logger.exception("call.transition.failed call_id=%s to=%s", call.id, outcome.to_status)
        raise

    await session.refresh(call)
    logger.info(
        "call.transition.applied call_id=%s from=%s to=%s",
        call.id,
        outcome.from_status,
        outcome.to_status,
    )
    return call


@dataclass(frozen=True)
class TimelinePhase:
    status: str
    label: str
    description: str
    state: str
    timestamp: datetime | None
    entries: tuple[AuditEntry, ...] = ()


@dataclass(frozen=True)
class CallTimeline:
    phases: tuple[TimelinePhase, ...]
    is_cancelled: bool = False
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None


def _payload_value(entry: AuditEntry, key: str) -> object:
    payload = entry.payload or {}
    return payload.get(key)


def build_timeline(
    *,
    lifecycle_status: str,
    entries: Iterable[AuditEntry],
    opens_at: datetime | None = None,
    closes_at: datetime | None = None,
    is_cancelled: bool = False,
    phases: Sequence[Phase] = WORKFLOW_PHASES,
) -> CallTimeline:
    """Rebuild the phase timeline of a call from its audit history.

    Pure and deterministic: entries are ordered by ``created_at`` with input
    order as tie-breaker, and each phase takes the latest entry whose
    ``to_status`` names it. Published and closed phases with no entry fall back
    to ``opens_at`` and ``closes_at``.
    """
    ordered = [
        entry
        for _, entry in sorted(
            enumerate(entries),
            key=lambda item: (item[1].created_at, item[0]),
        )
    ]
    cancelled = is_cancelled or lifecycle_status == CANCELLED

    effective_status = lifecycle_status
    cancel_entry: AuditEntry | None = None
    if cancelled:
        cancel_entries = [e for e in ordered if _payload_value(e, "to_status") == CANCELLED]
        cancel_entry = cancel_entries[-1] if cancel_entries else None
        from_status = _payload_value(cancel_entry, "from_status") if cancel_entry else None
        effective_status = from_status if isinstance(from_status, str) else ""
    current_index = phase_index(effective_status, phases=phases)
    if current_index is None:
        current_index = -1
    closed_index = phase_index(CLOSED, phases=phases)

    timeline: list[TimelinePhase] = []
    for index, phase in enumerate(phases):
        matching = tuple(e for e in ordered if _payload_value(e, "to_status") == phase.status)
        if index < current_index:
            state = TIMELINE_COMPLETED
        elif index == current_index:
            state = TIMELINE_CURRENT
        else:
            state = TIMELINE_FUTURE

        timestamp = matching[-1].created_at if matching else None
        if timestamp is None and phase.status == PUBLISHED:
            timestamp = opens_at
        if (
            timestamp is None
            and phase.status == CLOSED
            and closed_index is not None
            and current_index >= closed_index
        ):
            timestamp = closes_at

        timeline.append(
            TimelinePhase(
                status=phase.status,
                label=phase.label,
                description=phase.description,
                state=state,
                timestamp=timestamp,
                entries=matching,
            ),
        )

    reason = _payload_value(cancel_entry, "cancellation_reason") if cancel_entry else None
    return CallTimeline(
        phases=tuple(timeline),
        is_cancelled=cancelled,
        cancelled_at=cancel_entry.created_at if cancel_entry else None,
        cancellation_reason=reason if isinstance(reason, str) else None,
    )


async def load_call_timeline(session: AsyncSession, *, call: Call) -> CallTimeline:
    """Read the audit history of a call and rebuild its timeline."""
    entries = await AuditEntry.objects.filter_by(
        entity_type="call",
        entity_id=call.id,
    ).order_by(col(AuditEntry.created_at).asc()).all(session)
    return build_timeline(
        lifecycle_status=call.lifecycle_status,
        entries=entries,
        opens_at=call.opens_at,
        closes_at=call.closes_at,
        is_cancelled=call.is_cancelled,
    )
