from __future__ import annotations

from datetime import date, datetime

import pytest

from teamplanner.planning.models import EmployeeCreate, RecordCreate, TeamCreate, ViewCreate
from teamplanner.planning.repository import Repositories
from teamplanner.planning.workspace import TenantNotFoundError, TenantWorkspace
from teamplanner.tenancy.context import Identity
from teamplanner.tenancy.permissions import (
    PermissionDeniedError,
    ReferentialIntegrityError,
    UnscopedIdentityError,
)

from tests._fake_firestore import FakeFirestore


def _sales() -> TeamCreate:
    return TeamCreate(full_name="Sales Team", display_name="SALES", color="#16A34A")


@pytest.mark.asyncio
async def test_delete_team_guard_scenario(repos: Repositories, editor: Identity, fake_db: FakeFirestore) -> None:
    ws = TenantWorkspace(editor, repos)
    t1 = await ws.create_team(_sales())
    e1 = await ws.create_employee(EmployeeCreate(full_name="Ana Ruiz", display_name="Ana", team_id=t1, can_edit=True))

    assert [e.id for e in await ws.list_employees_by_team(t1)] == [e1]

    with pytest.raises(ReferentialIntegrityError) as ei:
        await ws.delete_team(t1)
    assert ei.value.team_id == t1
    assert ei.value.employee_ids == (e1,)
    # Rejected before any delete was issued.
    assert not [w for w in fake_db.writes if w[0] == "delete"]
    assert await ws.get_team(t1) is not None

    await ws.delete_employee(e1)
    await ws.delete_team(t1)
    assert await ws.get_team(t1) is None


@pytest.mark.asyncio
async def test_viewer_can_read_but_not_write(repos: Repositories, editor: Identity, viewer: Identity) -> None:
    t1 = await TenantWorkspace(editor, repos).create_team(_sales())

    ws = TenantWorkspace(viewer, repos)
    assert [t.id for t in await ws.list_teams()] == [t1]
    with pytest.raises(PermissionDeniedError):
        await ws.create_team(_sales())
    with pytest.raises(PermissionDeniedError):
        await ws.delete_team(t1)
    assert await ws.get_team(t1) is not None


@pytest.mark.asyncio
async def test_unscoped_identity_is_rejected_everywhere(
    repos: Repositories, unscoped: Identity, fake_db: FakeFirestore
) -> None:
    ws = TenantWorkspace(unscoped, repos)
    with pytest.raises(UnscopedIdentityError):
        await ws.list_employees()
    with pytest.raises(UnscopedIdentityError):
        await ws.create_team(_sales())
    with pytest.raises(UnscopedIdentityError):
        ws.subscribe_teams()
    assert fake_db.writes == []


@pytest.mark.asyncio
async def test_workspace_is_bound_to_identity_tenant(repos: Repositories, editor: Identity) -> None:
    other = Identity(subject_id="u2", email="x@y.test", display_name="X", tenant_id="t2", can_edit=True)
    await TenantWorkspace(other, repos).create_team(_sales())

    ws = TenantWorkspace(editor, repos)
    assert ws.tenant_id == "t1"
    assert await ws.list_teams() == []


@pytest.mark.asyncio
async def test_records_and_views_through_workspace(repos: Repositories, editor: Identity) -> None:
    ws = TenantWorkspace(editor, repos)
    rid = await ws.create_record(
        RecordCreate(employee_id="e1", date=date(2025, 10, 13), value="Ramcon", updated_by="e1")
    )
    got = await ws.get_record_by_employee_and_date("e1", datetime(2025, 10, 13, 15, 0))
    assert got is not None and got.id == rid
    assert [r.id for r in await ws.list_records_by_date_range(date(2025, 10, 1), date(2025, 10, 31))] == [rid]

    vid = await ws.create_view(ViewCreate(owner_id="e1", name="Mine", shared_with=("e2",)))
    assert [v.id for v in await ws.list_views_shared_with("e2")] == [vid]


@pytest.mark.asyncio
async def test_verify_tenant(repos: Repositories, editor: Identity) -> None:
    ws = TenantWorkspace(editor, repos)
    with pytest.raises(TenantNotFoundError):
        await ws.verify_tenant()

    await repos.tenants.create("t1", name="Acme")
    tenant = await ws.verify_tenant()
    assert tenant.name == "Acme"
