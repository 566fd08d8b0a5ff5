from __future__ import annotations

import pytest

from teamplanner.planning.models import Employee, Team
from teamplanner.tenancy.context import Identity
from teamplanner.tenancy.permissions import (
    PermissionDeniedError,
    UnscopedIdentityError,
    can_access_tenant,
    can_delete_team,
    can_mutate,
    referencing_employee_ids,
    require_mutation,
    require_tenant_access,
)


def _emp(eid: str, team_id: str) -> Employee:
    return Employee(id=eid, full_name=eid, display_name=eid, team_id=team_id)


def test_can_access_tenant(editor: Identity, unscoped: Identity) -> None:
    assert can_access_tenant(editor, "t1") is True
    assert can_access_tenant(editor, "t2") is False
    assert can_access_tenant(editor, "") is False
    assert can_access_tenant(None, "t1") is False
    assert can_access_tenant(unscoped, "t1") is False


def test_can_mutate(editor: Identity, viewer: Identity) -> None:
    assert can_mutate(editor) is True
    assert can_mutate(viewer) is False
    assert can_mutate(None) is False


def test_can_delete_team() -> None:
    team = Team(id="t-sales", full_name="Sales Team", display_name="SALES", color="#16A34A")
    employees = [_emp("e1", "t-ops"), _emp("e2", "t-sales")]

    assert can_delete_team(team, employees) is False
    assert can_delete_team("t-sales", employees) is False
    assert can_delete_team(team, [_emp("e1", "t-ops")]) is True
    assert can_delete_team(team, []) is True
    assert referencing_employee_ids("t-sales", employees) == ["e2"]


def test_require_tenant_access(editor: Identity, unscoped: Identity) -> None:
    require_tenant_access(editor, "t1")

    with pytest.raises(PermissionDeniedError) as ei:
        require_tenant_access(editor, "t2")
    assert not isinstance(ei.value, UnscopedIdentityError)
    assert ei.value.tenant_id == "t2"

    with pytest.raises(UnscopedIdentityError):
        require_tenant_access(unscoped, "t1")

    with pytest.raises(PermissionDeniedError):
        require_tenant_access(None, "t1")


def test_require_mutation(editor: Identity, viewer: Identity) -> None:
    require_mutation(editor, "t1")
    with pytest.raises(PermissionDeniedError):
        require_mutation(viewer, "t1")
    with pytest.raises(PermissionDeniedError):
        require_mutation(editor, "t2")
