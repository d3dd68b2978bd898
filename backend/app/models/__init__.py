"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from app.models.applicants import ApplicantProfile
from app.models.audit_entries import AuditEntry
from app.models.calls import Call
from app.models.decisions import ProposalDecision
from app.models.identity_reveals import IdentityReveal
from app.models.proposals import Proposal
from app.models.review_assignments import ReviewAssignment
from app.models.reviewers import Reviewer, ReviewerConflict
from app.models.reviews import Review, ReviewCriterionScore
from app.models.scoring_criteria import ScoringCriterion

__all__ = [
    "ApplicantProfile",
    "AuditEntry",
    "Call",
    "IdentityReveal",
    "Proposal",
    "ProposalDecision",
    "Review",
    "ReviewAssignment",
    "ReviewCriterionScore",
    "Reviewer",
    "ReviewerConflict",
    "ScoringCriterion",
]
