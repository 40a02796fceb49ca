# clinicq/core/context.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from clinicq.core.errors import AccessDenied


@dataclass(frozen=True)
class StaffScope:
    """Organization (and optionally a single department) an operator may act on."""

    organization_id: UUID
    department_id: Optional[UUID] = None

    def allows(self, organization_id: UUID, department_id: UUID) -> bool:
        if organization_id != self.organization_id:
            return False
        return self.department_id is None or self.department_id == department_id


@dataclass(frozen=True)
class Actor:
    """
    Already-authenticated caller. `scope` is None for patients and for
    admins without a staff assignment (the latter are unrestricted).
    """

    id: UUID
    role: str
    email: Optional[str] = None
    scope: Optional[StaffScope] = None

    @property
    def is_privileged(self) -> bool:
        return self.role in ("STAFF", "ADMIN")


def ensure_operator(actor: Actor) -> None:
    if not actor.is_privileged:
        raise AccessDenied("staff_only")
    if actor.role == "STAFF" and actor.scope is None:
        raise AccessDenied("staff_account_not_configured")


def ensure_in_scope(actor: Actor, organization_id: UUID, department_id: UUID) -> None:
    """
    Raise AccessDenied unless `actor` may operate on the given department.
    """
    ensure_operator(actor)
    if actor.scope is None:
        return
    if organization_id != actor.scope.organization_id:
        raise AccessDenied("not_assigned_to_organization")
    if not actor.scope.allows(organization_id, department_id):
        raise AccessDenied("not_assigned_to_department")


def resolve_department(actor: Actor, requested: Optional[UUID]) -> Optional[UUID]:
    """
    Department a queue action targets: staff pinned to a department may only
    name their own one (or omit it).
    """
    ensure_operator(actor)
    fixed = actor.scope.department_id if actor.scope else None
    if fixed is not None:
        if requested is not None and requested != fixed:
            raise AccessDenied("not_assigned_to_department")
        return fixed
    return requested
