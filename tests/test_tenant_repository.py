from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from google.api_core.datetime_helpers import DatetimeWithNanoseconds

from teamplanner.common.timeutils import MonotonicUtcClock
from teamplanner.common.validation import ValidationError
from teamplanner.planning.models import (
    DateRange,
    EmployeeCreate,
    EmployeePatch,
    RecordCreate,
    RecordPatch,
    TeamCreate,
    TeamPatch,
    ViewCreate,
    ViewFilters,
    ViewPatch,
)
from teamplanner.planning.repository import Repositories, RepositoryError

from tests._fake_firestore import FakeFirestore

UTC = timezone.utc


async def _team(repos: Repositories, tenant_id: str, display: str = "SALES") -> str:
    return await repos.teams.create(
        tenant_id, TeamCreate(full_name=f"{display} Team", display_name=display, color="#16A34A")
    )


async def _employee(repos: Repositories, tenant_id: str, team_id: str, display: str = "Ana") -> str:
    return await repos.employees.create(
        tenant_id,
        EmployeeCreate(full_name=f"{display} Ruiz", display_name=display, team_id=team_id, can_edit=True),
    )


@pytest.mark.asyncio
async def test_documents_land_under_tenant_partition(repos: Repositories, fake_db: FakeFirestore) -> None:
    tid = await _team(repos, "t1")
    eid = await _employee(repos, "t1", tid)

    assert f"tenants/t1/teams/{tid}" in fake_db.store
    assert f"tenants/t1/employees/{eid}" in fake_db.store
    doc = fake_db.store[f"tenants/t1/employees/{eid}"]
    assert doc["teamId"] == tid
    assert isinstance(doc["createdAt"], DatetimeWithNanoseconds)


@pytest.mark.asyncio
async def test_tenant_isolation(repos: Repositories) -> None:
    tid = await _team(repos, "t1")
    eid = await _employee(repos, "t1", tid)

    assert eid not in [e.id for e in await repos.employees.list_all("t2")]
    assert await repos.employees.get_by_id("t2", eid) is None
    assert await repos.employees.list_by_team("t2", tid) == []

    # Deleting "the same id" under another tenant leaves T1 untouched.
    await repos.employees.delete("t2", eid)
    assert await repos.employees.get_by_id("t1", eid) is not None


@pytest.mark.asyncio
async def test_update_under_other_tenant_fails_and_does_not_create(repos: Repositories, fake_db: FakeFirestore) -> None:
    tid = await _team(repos, "t1")
    with pytest.raises(RepositoryError) as ei:
        await repos.teams.update("t2", tid, TeamPatch(display_name="X"))
    assert ei.value.entity_kind == "team"
    assert ei.value.operation == "update"
    assert ei.value.tenant_id == "t2"
    assert f"tenants/t2/teams/{tid}" not in fake_db.store


@pytest.mark.asyncio
async def test_update_merges_and_advances_updated_at(repos: Repositories) -> None:
    tid = await _team(repos, "t1")
    eid = await _employee(repos, "t1", tid)
    before = await repos.employees.get_by_id("t1", eid)
    assert before is not None and before.updated_at is None

    await repos.employees.update("t1", eid, EmployeePatch(display_name="Ana R", can_edit=False))
    first = await repos.employees.get_by_id("t1", eid)
    assert first is not None
    assert first.display_name == "Ana R"
    assert first.can_edit is False
    assert first.full_name == "Ana Ruiz"
    assert first.team_id == tid
    assert first.created_at == before.created_at
    assert first.updated_at is not None

    # Same values again: still safe, still advances updatedAt.
    await repos.employees.update("t1", eid, EmployeePatch(display_name="Ana R", can_edit=False))
    second = await repos.employees.get_by_id("t1", eid)
    assert second is not None
    assert second.display_name == "Ana R"
    assert second.updated_at > first.updated_at


@pytest.mark.asyncio
async def test_updated_at_comes_from_repository_clock(fake_db: FakeFirestore) -> None:
    fixed = datetime(2025, 10, 13, 9, 0, tzinfo=UTC)
    repos = Repositories.from_client(fake_db, clock=MonotonicUtcClock(source=lambda: fixed))
    tid = await _team(repos, "t1")
    await repos.teams.update("t1", tid, TeamPatch(color="#abc"))
    team = await repos.teams.get_by_id("t1", tid)
    assert team is not None
    assert team.color == "#AABBCC"
    assert team.created_at == fixed
    assert team.updated_at == fixed + timedelta(microseconds=1)


@pytest.mark.asyncio
async def test_delete_then_get_returns_none(repos: Repositories) -> None:
    tid = await _team(repos, "t1")
    await repos.teams.delete("t1", tid)
    assert await repos.teams.get_by_id("t1", tid) is None


@pytest.mark.asyncio
async def test_create_rejects_wrong_input_type(repos: Repositories) -> None:
    with pytest.raises(TypeError):
        await repos.teams.create("t1", EmployeeCreate(full_name="A", display_name="A", team_id="x"))  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        await repos.teams.update("t1", "x", EmployeePatch(display_name="A"))  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_invalid_tenant_id_never_reaches_store(repos: Repositories, fake_db: FakeFirestore) -> None:
    with pytest.raises(ValidationError):
        await repos.employees.list_all("t1/employees/x")
    with pytest.raises(ValidationError):
        await repos.teams.get_by_id("", "x")
    assert fake_db.writes == []


@pytest.mark.asyncio
async def test_store_failures_are_tagged(repos: Repositories, fake_db: FakeFirestore) -> None:
    fake_db.fail("stream", ConnectionError("unavailable"))
    with pytest.raises(RepositoryError) as ei:
        await repos.views.list_all("t1")
    err = ei.value
    assert (err.entity_kind, err.operation, err.tenant_id) == ("view", "list_all", "t1")
    assert isinstance(err.__cause__, ConnectionError)

    fake_db.fail("add", PermissionError("rules denied"))
    with pytest.raises(RepositoryError) as ei:
        await _team(repos, "t1")
    assert ei.value.operation == "create"


@pytest.mark.asyncio
async def test_sales_team_scenario(repos: Repositories) -> None:
    t1 = await repos.teams.create(
        "acme", TeamCreate(full_name="Sales Team", display_name="SALES", color="#16A34A")
    )
    e1 = await repos.employees.create(
        "acme", EmployeeCreate(full_name="Ana Ruiz", display_name="Ana", team_id=t1, can_edit=True)
    )
    assert [e.id for e in await repos.employees.list_by_team("acme", t1)] == [e1]

    await repos.employees.delete("acme", e1)
    await repos.teams.delete("acme", t1)
    assert await repos.teams.get_by_id("acme", t1) is None


@pytest.mark.asyncio
async def test_record_lookup_ignores_time_of_day(repos: Repositories) -> None:
    rid = await repos.records.create(
        "t1", RecordCreate(employee_id="e1", date=date(2025, 10, 13), value="Ramcon", updated_by="e1")
    )
    got = await repos.records.get_by_employee_and_date("t1", "e1", datetime(2025, 10, 13, 15, 0))
    assert got is not None
    assert got.id == rid
    assert got.value == "Ramcon"
    assert got.date == datetime(2025, 10, 13, tzinfo=UTC)
    assert got.updated_at is not None and got.created_at == got.updated_at

    assert await repos.records.get_by_employee_and_date("t1", "e1", date(2025, 10, 14)) is None
    assert await repos.records.get_by_employee_and_date("t1", "e2", date(2025, 10, 13)) is None


@pytest.mark.asyncio
async def test_record_day_boundaries_follow_planner_timezone(fake_db: FakeFirestore) -> None:
    madrid = ZoneInfo("Europe/Madrid")
    repos = Repositories.from_client(fake_db, tz=madrid)
    # 23:30 Madrid on the 13th is 21:30Z, still the 13th locally.
    await repos.records.create(
        "t1",
        RecordCreate(
            employee_id="e1", date=datetime(2025, 10, 13, 23, 30, tzinfo=madrid), value="late", updated_by="e1"
        ),
    )
    assert await repos.records.get_by_employee_and_date("t1", "e1", date(2025, 10, 13)) is not None
    assert await repos.records.get_by_employee_and_date("t1", "e1", date(2025, 10, 14)) is None


@pytest.mark.asyncio
async def test_naive_datetime_lookup_is_planner_wall_clock(fake_db: FakeFirestore) -> None:
    new_york = ZoneInfo("America/New_York")
    repos = Repositories.from_client(fake_db, tz=new_york)
    rid = await repos.records.create(
        "t1", RecordCreate(employee_id="e1", date=date(2025, 10, 13), value="Ramcon", updated_by="e1")
    )

    # 01:00 on the 13th in New York; read as UTC it would fall on the 12th locally.
    got = await repos.records.get_by_employee_and_date("t1", "e1", datetime(2025, 10, 13, 1, 0))
    assert got is not None and got.id == rid
    assert await repos.records.get_by_employee_and_date("t1", "e1", datetime(2025, 10, 12, 23, 0)) is None

    rows = await repos.records.list_by_date_range("t1", datetime(2025, 10, 13, 0, 0), datetime(2025, 10, 13, 0, 30))
    assert [r.id for r in rows] == [rid]


@pytest.mark.asyncio
async def test_record_range_is_inclusive_and_ordered(repos: Repositories) -> None:
    for day, value in [(15, "c"), (13, "a"), (14, "b"), (16, "d")]:
        await repos.records.create(
            "t1", RecordCreate(employee_id="e1", date=date(2025, 10, day), value=value, updated_by="e1")
        )
    await repos.records.create(
        "t1", RecordCreate(employee_id="e2", date=date(2025, 10, 14), value="other", updated_by="e2")
    )

    rows = await repos.records.list_by_employee_and_date_range("t1", "e1", date(2025, 10, 13), date(2025, 10, 15))
    assert [r.value for r in rows] == ["a", "b", "c"]

    all_rows = await repos.records.list_by_date_range("t1", date(2025, 10, 14), date(2025, 10, 14))
    assert sorted(r.value for r in all_rows) == ["b", "other"]

    with pytest.raises(ValidationError):
        await repos.records.list_by_date_range("t1", date(2025, 10, 15), date(2025, 10, 13))


@pytest.mark.asyncio
async def test_record_update_requires_and_stores_updated_by(repos: Repositories) -> None:
    rid = await repos.records.create(
        "t1", RecordCreate(employee_id="e1", date=date(2025, 10, 13), value="x", updated_by="e1")
    )
    await repos.records.update("t1", rid, RecordPatch(updated_by="e2", value="Ramcon"))
    rec = await repos.records.get_by_id("t1", rid)
    assert rec is not None
    assert rec.value == "Ramcon"
    assert rec.updated_by == "e2"
    assert rec.employee_id == "e1"


@pytest.mark.asyncio
async def test_views_by_owner_and_shared(repos: Repositories) -> None:
    filters = ViewFilters(date_range=DateRange(start=date(2025, 10, 1), end=date(2025, 10, 31)), team_ids=("t1",))
    v1 = await repos.views.create("t1", ViewCreate(owner_id="e1", name="Mine", filters=filters, shared_with=("e2",)))
    v2 = await repos.views.create("t1", ViewCreate(owner_id="e2", name="Theirs"))

    assert [v.id for v in await repos.views.list_by_owner("t1", "e1")] == [v1]
    assert [v.id for v in await repos.views.list_shared_with("t1", "e2")] == [v1]
    assert await repos.views.list_shared_with("t1", "e3") == []

    view = await repos.views.get_by_id("t1", v1)
    assert view is not None
    assert view.filters.team_ids == ("t1",)
    assert view.filters.date_range is not None
    assert view.filters.date_range.start == datetime(2025, 10, 1, tzinfo=UTC)

    await repos.views.update("t1", v2, ViewPatch(shared_with=("e1",), is_default=True))
    theirs = await repos.views.get_by_id("t1", v2)
    assert theirs is not None
    assert theirs.owner_id == "e2"
    assert theirs.shared_with == ("e1",)
    assert theirs.is_default is True


@pytest.mark.asyncio
async def test_tenant_repository_ensure(repos: Repositories) -> None:
    assert await repos.tenants.exists("acme") is False
    tenant, created = await repos.tenants.ensure("acme", default_name="Ana's Company", owner_id="u1")
    assert created is True
    assert tenant.name == "Ana's Company"
    assert tenant.owner_id == "u1"

    again, created = await repos.tenants.ensure("acme", default_name="Other")
    assert created is False
    assert again.name == "Ana's Company"
    assert await repos.tenants.exists("acme") is True


@pytest.mark.asyncio
async def test_employees_and_teams_list_in_store_order(repos: Repositories) -> None:
    tid = await _team(repos, "t1", "ZETA")
    await _team(repos, "t1", "ALPHA")
    await _employee(repos, "t1", tid, "Zoe")
    await _employee(repos, "t1", tid, "Abe")
    assert len(await repos.teams.list_all("t1")) == 2
    assert sorted(e.display_name for e in await repos.employees.list_by_team("t1", tid)) == ["Abe", "Zoe"]
