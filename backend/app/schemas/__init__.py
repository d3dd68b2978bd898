"""Public schema exports shared across API route modules."""

from app.schemas.assignments import (
    AssignReviewersRequest,
    AssignReviewersResponse,
    ConflictCreate,
    ConflictRead,
    ReviewerRankingRead,
)
from app.schemas.audit import AuditEntryRead
from app.schemas.calls import (
    CallCreate,
    CallDetailRead,
    CallRead,
    TimelineRead,
    TransitionRequest,
)
from app.schemas.decisions import DecisionCreate, DecisionRead, ReviewSummaryRead
from app.schemas.proposals import BlindProposalRead, ProposalCreate, ProposalOwnerRead
from app.schemas.reveals import IdentityRevealRequest, RevealedIdentityRead
from app.schemas.reviewers import ReviewerTermsRead, TermsAcceptanceRequest
from app.schemas.reviews import (
    CriterionScoreInput,
    ReviewDraftUpdate,
    ReviewerAssignmentRead,
    ReviewRead,
    ReviewSubmit,
)
from app.schemas.scoring_criteria import (
    ScoringCriterionCreate,
    ScoringCriterionRead,
    ScoringCriterionUpdate,
)

__all__ = [
    "AssignReviewersRequest",
    "AssignReviewersResponse",
    "AuditEntryRead",
    "BlindProposalRead",
    "CallCreate",
    "CallDetailRead",
    "CallRead",
    "ConflictCreate",
    "ConflictRead",
    "CriterionScoreInput",
    "DecisionCreate",
    "DecisionRead",
    "IdentityRevealRequest",
    "ProposalCreate",
    "ProposalOwnerRead",
    "RevealedIdentityRead",
    "ReviewDraftUpdate",
    "ReviewRead",
    "ReviewSubmit",
    "ReviewSummaryRead",
    "ReviewerAssignmentRead",
    "ReviewerRankingRead",
    "ReviewerTermsRead",
    "ScoringCriterionCreate",
    "ScoringCriterionRead",
    "ScoringCriterionUpdate",
    "TermsAcceptanceRequest",
    "TimelineRead",
    "TransitionRequest",
]
