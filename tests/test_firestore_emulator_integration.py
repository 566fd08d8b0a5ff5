from __future__ import annotations

import os
import uuid
from datetime import date

import pytest

from teamplanner.planning.models import EmployeeCreate, RecordCreate, RecordPatch, TeamCreate
from teamplanner.planning.repository import Repositories

pytestmark = pytest.mark.skipif(
    not os.getenv("FIRESTORE_EMULATOR_HOST"),
    reason="FIRESTORE_EMULATOR_HOST is not set; run under Firestore emulator",
)


@pytest.fixture
def emulator_repos() -> Repositories:
    from google.cloud import firestore

    project = os.getenv("FIREBASE_PROJECT_ID") or os.getenv("GOOGLE_CLOUD_PROJECT") or "demo-teamplanner-ci"
    return Repositories.from_client(firestore.Client(project=project))


@pytest.mark.asyncio
async def test_repositories_roundtrip_against_emulator(emulator_repos: Repositories) -> None:
    """
    Integration gate: the repositories' query shapes and timestamp codec work
    against the real Firestore wire protocol.

    Intended to run under:
      firebase emulators:exec --only firestore "pytest tests/test_firestore_emulator_integration.py"
    """
    repos = emulator_repos
    tenant_id = f"ci-{uuid.uuid4().hex[:12]}"
    other_tenant = f"{tenant_id}-other"

    team_id = await repos.teams.create(tenant_id, TeamCreate(full_name="Sales Team", display_name="SALES", color="16a34a"))
    emp_id = await repos.employees.create(
        tenant_id, EmployeeCreate(full_name="Ana Ruiz", display_name="Ana", team_id=team_id, can_edit=True)
    )
    await repos.teams.create(other_tenant, TeamCreate(full_name="Other", display_name="OTH", color="#000000"))

    teams = await repos.teams.list_all(tenant_id)
    assert [t.id for t in teams] == [team_id]
    assert teams[0].color == "#16A34A"
    assert teams[0].created_at is not None and teams[0].created_at.tzinfo is not None

    assert [e.id for e in await repos.employees.list_by_team(tenant_id, team_id)] == [emp_id]

    rid = await repos.records.create(
        tenant_id, RecordCreate(employee_id=emp_id, date=date(2025, 10, 13), value="Ramcon", updated_by=emp_id)
    )
    await repos.records.update(tenant_id, rid, RecordPatch(updated_by=emp_id, value="Office"))
    got = await repos.records.get_by_employee_and_date(tenant_id, emp_id, date(2025, 10, 13))
    assert got is not None and got.value == "Office"
    assert got.updated_at is not None and got.created_at is not None
    assert got.updated_at >= got.created_at

    ranged = await repos.records.list_by_date_range(tenant_id, date(2025, 10, 1), date(2025, 10, 31))
    assert [r.id for r in ranged] == [rid]

    await repos.records.delete(tenant_id, rid)
    await repos.employees.delete(tenant_id, emp_id)
    await repos.teams.delete(tenant_id, team_id)
    assert await repos.teams.list_all(tenant_id) == []
    assert len(await repos.teams.list_all(other_tenant)) == 1
