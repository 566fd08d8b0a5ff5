"""
Caller-facing planning API for one resolved identity.

`TenantWorkspace` binds an Identity to the repositories and applies the
permission gate before every call:

- reads require tenant membership (`can_access_tenant`)
- writes additionally require `canEdit`
- `delete_team` refuses while any employee still references the team

The tenant id always comes from the identity's claims; callers cannot pass
one in. Tenant existence is not checked per call; use `verify_tenant()` when
that matters.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional, Union

from teamplanner.common.logging import log_event
from teamplanner.tenancy.context import Identity
from teamplanner.tenancy.permissions import (
    PermissionDeniedError,
    ReferentialIntegrityError,
    referencing_employee_ids,
    require_mutation,
    require_tenant_access,
)

from .models import (
    Employee,
    EmployeeCreate,
    EmployeePatch,
    Record,
    RecordCreate,
    RecordPatch,
    Team,
    TeamCreate,
    TeamPatch,
    Tenant,
    View,
    ViewCreate,
    ViewPatch,
)
from .repository import Repositories
from .subscriptions import CollectionSubscription

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]


class TenantNotFoundError(LookupError):
    def __init__(self, tenant_id: str) -> None:
        super().__init__(f"Tenant {tenant_id!r} does not exist")
        self.tenant_id = tenant_id


class TenantWorkspace:
    def __init__(self, identity: Identity, repositories: Repositories) -> None:
        self._identity = identity
        self._repos = repositories

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def tenant_id(self) -> Optional[str]:
        return self._identity.tenant_id

    @property
    def can_edit(self) -> bool:
        return self._identity.can_edit is True

    def _read_scope(self) -> str:
        tid = self._identity.tenant_id
        require_tenant_access(self._identity, tid or "")
        assert tid is not None
        return tid

    def _write_scope(self) -> str:
        tid = self._identity.tenant_id
        require_mutation(self._identity, tid or "")
        assert tid is not None
        return tid

    async def verify_tenant(self) -> Tenant:
        """Fail unless the identity's tenant document exists."""
        tid = self._read_scope()
        tenant = await self._repos.tenants.get(tid)
        if tenant is None:
            log_event(
                logger,
                "permission.denied",
                severity="WARNING",
                reason="tenant_missing",
                subject_id=self._identity.subject_id,
                tenant_id=tid,
            )
            raise TenantNotFoundError(tid)
        return tenant

    # -- employees -----------------------------------------------------------

    async def list_employees(self) -> list[Employee]:
        return await self._repos.employees.list_all(self._read_scope())

    async def get_employee(self, employee_id: str) -> Optional[Employee]:
        return await self._repos.employees.get_by_id(self._read_scope(), employee_id)

    async def list_employees_by_team(self, team_id: str) -> list[Employee]:
        return await self._repos.employees.list_by_team(self._read_scope(), team_id)

    async def create_employee(self, data: EmployeeCreate) -> str:
        return await self._repos.employees.create(self._write_scope(), data)

    async def update_employee(self, employee_id: str, patch: EmployeePatch) -> None:
        await self._repos.employees.update(self._write_scope(), employee_id, patch)

    async def delete_employee(self, employee_id: str) -> None:
        await self._repos.employees.delete(self._write_scope(), employee_id)

    def subscribe_employees(self) -> CollectionSubscription[Employee]:
        return self._repos.employees.subscribe(self._read_scope())

    # -- teams ---------------------------------------------------------------

    async def list_teams(self) -> list[Team]:
        return await self._repos.teams.list_all(self._read_scope())

    async def get_team(self, team_id: str) -> Optional[Team]:
        return await self._repos.teams.get_by_id(self._read_scope(), team_id)

    async def create_team(self, data: TeamCreate) -> str:
        return await self._repos.teams.create(self._write_scope(), data)

    async def update_team(self, team_id: str, patch: TeamPatch) -> None:
        await self._repos.teams.update(self._write_scope(), team_id, patch)

    async def delete_team(self, team_id: str) -> None:
        """
        Delete a team that no employee references.

        The check and the delete are separate calls; an employee assigned to
        the team in between is not caught here.
        """
        tid = self._write_scope()
        members = await self._repos.employees.list_by_team(tid, team_id)
        blocking = referencing_employee_ids(team_id, members)
        if blocking:
            log_event(
                logger,
                "referential_integrity.rejected",
                severity="WARNING",
                tenant_id=tid,
                team_id=team_id,
                employee_count=len(blocking),
            )
            raise ReferentialIntegrityError(
                f"Team {team_id!r} still has {len(blocking)} employee(s) assigned",
                team_id=team_id,
                employee_ids=blocking,
            )
        await self._repos.teams.delete(tid, team_id)

    def subscribe_teams(self) -> CollectionSubscription[Team]:
        return self._repos.teams.subscribe(self._read_scope())

    # -- records -------------------------------------------------------------

    async def list_records(self) -> list[Record]:
        return await self._repos.records.list_all(self._read_scope())

    async def get_record(self, record_id: str) -> Optional[Record]:
        return await self._repos.records.get_by_id(self._read_scope(), record_id)

    async def list_records_by_employee_and_date_range(
        self, employee_id: str, start: DateLike, end: DateLike
    ) -> list[Record]:
        return await self._repos.records.list_by_employee_and_date_range(self._read_scope(), employee_id, start, end)

    async def list_records_by_date_range(self, start: DateLike, end: DateLike) -> list[Record]:
        return await self._repos.records.list_by_date_range(self._read_scope(), start, end)

    async def get_record_by_employee_and_date(self, employee_id: str, day: DateLike) -> Optional[Record]:
        return await self._repos.records.get_by_employee_and_date(self._read_scope(), employee_id, day)

    async def create_record(self, data: RecordCreate) -> str:
        return await self._repos.records.create(self._write_scope(), data)

    async def update_record(self, record_id: str, patch: RecordPatch) -> None:
        await self._repos.records.update(self._write_scope(), record_id, patch)

    async def delete_record(self, record_id: str) -> None:
        await self._repos.records.delete(self._write_scope(), record_id)

    def subscribe_records(self) -> CollectionSubscription[Record]:
        return self._repos.records.subscribe(self._read_scope(), order_by="date")

    # -- views ---------------------------------------------------------------

    async def list_views(self) -> list[View]:
        return await self._repos.views.list_all(self._read_scope())

    async def get_view(self, view_id: str) -> Optional[View]:
        return await self._repos.views.get_by_id(self._read_scope(), view_id)

    async def list_views_by_owner(self, owner_id: str) -> list[View]:
        return await self._repos.views.list_by_owner(self._read_scope(), owner_id)

    async def list_views_shared_with(self, employee_id: str) -> list[View]:
        return await self._repos.views.list_shared_with(self._read_scope(), employee_id)

    async def create_view(self, data: ViewCreate) -> str:
        return await self._repos.views.create(self._write_scope(), data)

    async def update_view(self, view_id: str, patch: ViewPatch) -> None:
        await self._repos.views.update(self._write_scope(), view_id, patch)

    async def delete_view(self, view_id: str) -> None:
        await self._repos.views.delete(self._write_scope(), view_id)

    def subscribe_views(self) -> CollectionSubscription[View]:
        return self._repos.views.subscribe(self._read_scope())


__all__ = [
    "PermissionDeniedError",
    "ReferentialIntegrityError",
    "TenantNotFoundError",
    "TenantWorkspace",
]
