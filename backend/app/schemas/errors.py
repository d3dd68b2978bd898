"""Structured error payload schemas used by API responses."""

from __future__ import annotations

from pydantic import Field
from sqlmodel import SQLModel


class ErrorResponse(SQLModel):
    """Error envelope rendered for every failed request."""

    detail: str | dict[str, object] | list[object] = Field(
        description=(
            "Error payload. Workflow errors carry `code` and `message`; clients "
            "should branch on `code`."
        ),
        examples=[
            "Call not found",
            {"code": "premature_reveal", "message": "Identities can only be revealed once the call is closed"},
        ],
    )
    request_id: str | None = Field(
        default=None,
        description="Request correlation identifier injected by middleware.",
    )
    code: str | None = Field(
        default=None,
        description="Machine-readable error code.",
        examples=["invalid_transition", "decision_already_recorded"],
    )
