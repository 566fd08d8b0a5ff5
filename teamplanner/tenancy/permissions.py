"""
Permission gate: pure decisions over a resolved Identity (no I/O).

These checks are advisory, for the caller's UX. The authoritative boundary is
the Firestore security rules keyed on the same `tenantId`/`canEdit` claims; a
deployment must never rely on this module as its only enforcement point.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from teamplanner.common.logging import log_event

from .context import Identity

logger = logging.getLogger(__name__)


class PermissionDeniedError(PermissionError):
    def __init__(self, message: str, *, subject_id: Optional[str] = None, tenant_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.subject_id = subject_id
        self.tenant_id = tenant_id


class UnscopedIdentityError(PermissionDeniedError):
    """Authenticated, but no tenant assigned yet (provision, then refresh claims)."""


class ReferentialIntegrityError(ValueError):
    def __init__(self, message: str, *, team_id: str, employee_ids: Sequence[str]) -> None:
        super().__init__(message)
        self.team_id = team_id
        self.employee_ids = tuple(employee_ids)


def can_access_tenant(identity: Optional[Identity], tenant_id: Optional[str]) -> bool:
    if identity is None or identity.tenant_id is None or not tenant_id:
        return False
    return identity.tenant_id == tenant_id


def can_mutate(identity: Optional[Identity]) -> bool:
    return identity is not None and identity.can_edit is True


def can_delete_team(team: object, employees: Iterable[object]) -> bool:
    """True iff no employee in `employees` references the team (a Team or its id)."""
    team_id = team if isinstance(team, str) else str(getattr(team, "id", ""))
    return not referencing_employee_ids(team_id, employees)


def referencing_employee_ids(team_id: str, employees: Iterable[object]) -> list[str]:
    return [str(getattr(e, "id", "")) for e in employees if getattr(e, "team_id", None) == team_id]


def require_tenant_access(identity: Optional[Identity], tenant_id: str) -> None:
    if identity is not None and identity.tenant_id is None:
        _denied("unscoped_identity", identity, tenant_id)
        raise UnscopedIdentityError(
            "No tenant is assigned to this account; ask an administrator to assign one, then refresh claims",
            subject_id=identity.subject_id,
            tenant_id=tenant_id,
        )
    if not can_access_tenant(identity, tenant_id):
        _denied("tenant_mismatch", identity, tenant_id)
        raise PermissionDeniedError(
            "Identity is not a member of this tenant",
            subject_id=identity.subject_id if identity else None,
            tenant_id=tenant_id,
        )


def require_mutation(identity: Optional[Identity], tenant_id: str) -> None:
    require_tenant_access(identity, tenant_id)
    if not can_mutate(identity):
        _denied("read_only", identity, tenant_id)
        raise PermissionDeniedError(
            "Edit permission required",
            subject_id=identity.subject_id if identity else None,
            tenant_id=tenant_id,
        )


def _denied(reason: str, identity: Optional[Identity], tenant_id: Optional[str]) -> None:
    log_event(
        logger,
        "permission.denied",
        severity="WARNING",
        reason=reason,
        subject_id=identity.subject_id if identity else None,
        tenant_id=tenant_id,
    )
