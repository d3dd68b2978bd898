"""Caller identity resolution.

Authentication itself happens upstream (session proxy); by the time a request
reaches this service the proxy has attached the caller's id, role, and
organization as headers. These helpers turn them into an ``ActorContext`` used
for audit attribution and role checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID

from fastapi import Header

from app.core.errors import PermissionDenied, ValidationError

ActorRole = Literal["org_admin", "edital_manager", "reviewer", "proponente"]
VALID_ROLES: frozenset[str] = frozenset(
    {"org_admin", "edital_manager", "reviewer", "proponente"},
)
MANAGER_ROLES: frozenset[str] = frozenset({"org_admin", "edital_manager"})


@dataclass(frozen=True)
class ActorContext:
    """Authenticated caller identity attached to every workflow action."""

    actor_id: UUID
    role: str
    organization_id: UUID

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES


def _parse_uuid(value: str | None, *, header: str) -> UUID:
    if value is None or not value.strip():
        raise PermissionDenied(f"Missing {header} header", code="unauthenticated")
    try:
        return UUID(value.strip())
    except ValueError as exc:
        raise ValidationError(f"{header} must be a UUID") from exc


def get_actor_context(
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
    x_organization_id: str | None = Header(default=None),
) -> ActorContext:
    """Resolve the caller from upstream identity headers."""
    actor_id = _parse_uuid(x_actor_id, header="X-Actor-Id")
    organization_id = _parse_uuid(x_organization_id, header="X-Organization-Id")
    role = (x_actor_role or "").strip()
    if role not in VALID_ROLES:
        raise PermissionDenied(f"Unknown role: {role or '<empty>'}", code="unknown_role")
    return ActorContext(actor_id=actor_id, role=role, organization_id=organization_id)


def require_manager(actor: ActorContext) -> ActorContext:
    """Raise unless the caller manages calls for the organization."""
    if not actor.is_manager:
        raise PermissionDenied("Organization manager role required")
    return actor


def require_reviewer(actor: ActorContext) -> ActorContext:
    """Raise unless the caller is acting as a reviewer."""
    if actor.role != "reviewer":
        raise PermissionDenied("Reviewer role required")
    return actor
