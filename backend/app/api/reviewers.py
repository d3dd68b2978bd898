"""Reviewer self-service endpoints for the confidentiality terms."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from app.api.deps import REVIEWER_DEP, SESSION_DEP
from app.core.config import settings
from app.schemas.reviewers import ReviewerTermsRead, TermsAcceptanceRequest
from app.services.reviewers import accept_reviewer_terms, get_reviewer_or_404, has_current_terms

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import ActorContext
    from app.models.reviewers import Reviewer

router = APIRouter(prefix="/reviewers", tags=["reviewers"])


def _terms_read(reviewer: Reviewer) -> ReviewerTermsRead:
    return ReviewerTermsRead(
        reviewer_id=reviewer.id,
        terms_version=reviewer.terms_version,
        terms_accepted_at=reviewer.terms_accepted_at,
        current_terms_version=settings.reviewer_terms_version,
        terms_current=has_current_terms(reviewer),
    )


@router.get("/me/terms", response_model=ReviewerTermsRead)
async def get_my_terms(
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = REVIEWER_DEP,
) -> ReviewerTermsRead:
    """Return which terms version the caller accepted and which one is in force."""
    reviewer = await get_reviewer_or_404(
        session,
        reviewer_id=actor.actor_id,
        organization_id=actor.organization_id,
    )
    return _terms_read(reviewer)


@router.post("/me/terms-acceptance", response_model=ReviewerTermsRead)
async def accept_my_terms(
    payload: TermsAcceptanceRequest,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = REVIEWER_DEP,
) -> ReviewerTermsRead:
    """Accept the confidentiality terms; required before drafting or submitting reviews."""
    reviewer = await accept_reviewer_terms(
        session,
        actor=actor,
        version=payload.terms_version,
    )
    return _terms_read(reviewer)
