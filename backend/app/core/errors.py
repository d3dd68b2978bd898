"""Typed domain errors raised by the review workflow services.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer renders it with. Raising one of these never leaves partial writes behind:
services raise before commit and roll the session back on failure.
"""

from __future__ import annotations

from fastapi import status


class WorkflowError(Exception):
    """Base class for recoverable, caller-facing workflow failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_code: str = "workflow_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_detail(self) -> dict[str, object]:
        return {"code": self.code, "message": self.message}


class InvalidTransition(WorkflowError):
    """A lifecycle transition precondition did not hold."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "invalid_transition"


class PrematureAssignment(WorkflowError):
    """Reviewers cannot be assigned before the call is closed."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "premature_assignment"


class PrematureReveal(WorkflowError):
    """Identities cannot be revealed before the call is closed."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "premature_reveal"


class PrematureDecision(WorkflowError):
    """A decision gate (call phase or submitted reviews) was not satisfied."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "premature_decision"


class DecisionAlreadyRecorded(WorkflowError):
    """Decisions are write-once per proposal."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "decision_already_recorded"


class ReviewLocked(WorkflowError):
    """Submitted reviews are immutable."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "review_locked"


class ValidationError(WorkflowError):
    """A required input was missing, empty, or inconsistent."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "validation_error"


class NotFound(WorkflowError):
    """A referenced call, proposal, reviewer, or assignment does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"


class PermissionDenied(WorkflowError):
    """The caller's role does not allow the requested action."""

    status_code = status.HTTP_403_FORBIDDEN
    default_code = "permission_denied"


class CriteriaLocked(WorkflowError):
    """A call's scoring rubric is frozen once submissions close."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "criteria_locked"
