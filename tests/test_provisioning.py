from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import pytest
from firebase_admin import auth as firebase_auth

from scripts import set_custom_claims
from teamplanner.planning.repository import Repositories, TenantRepository
from teamplanner.tenancy.provisioning import (
    IdentityNotFoundError,
    ProvisioningResult,
    UserClaims,
    assign_tenant_claims,
    get_user_claims,
    list_user_claims,
)

from tests._fake_firestore import FakeFirestore


@dataclass
class _User:
    uid: str
    email: str
    display_name: Optional[str] = None
    custom_claims: Optional[dict[str, Any]] = None


@dataclass
class _Page:
    users: list[_User]


@dataclass
class _FakeAuthApi:
    users: dict[str, _User] = field(default_factory=dict)

    def get_user_by_email(self, email: str) -> _User:
        if email not in self.users:
            raise firebase_auth.UserNotFoundError(f"No user record found for the provided email: {email}")
        return self.users[email]

    def set_custom_user_claims(self, uid: str, claims: dict[str, Any]) -> None:
        for u in self.users.values():
            if u.uid == uid:
                u.custom_claims = dict(claims)

    def list_users(self, max_results: int = 1000) -> _Page:
        return _Page(users=list(self.users.values())[:max_results])


@pytest.fixture
def auth_api() -> _FakeAuthApi:
    return _FakeAuthApi(
        users={
            "ana@acme.test": _User(uid="u-ana", email="ana@acme.test", display_name="Ana"),
            "bo@acme.test": _User(uid="u-bo", email="bo@acme.test"),
        }
    )


@pytest.mark.asyncio
async def test_assign_creates_tenant_then_reuses(repos: Repositories, auth_api: _FakeAuthApi) -> None:
    r1 = await assign_tenant_claims("ana@acme.test", "acme", True, tenants=repos.tenants, auth_api=auth_api)
    assert r1 == ProvisioningResult(uid="u-ana", email="ana@acme.test", tenant_id="acme", can_edit=True, tenant_created=True)
    assert auth_api.users["ana@acme.test"].custom_claims == {"tenantId": "acme", "canEdit": True}

    tenant = await repos.tenants.get("acme")
    assert tenant is not None
    assert tenant.name == "Ana's Company"
    assert tenant.owner_id == "u-ana"

    r2 = await assign_tenant_claims("bo@acme.test", "acme", False, tenants=repos.tenants, auth_api=auth_api)
    assert r2.tenant_created is False
    assert auth_api.users["bo@acme.test"].custom_claims == {"tenantId": "acme", "canEdit": False}
    assert (await repos.tenants.get("acme")).owner_id == "u-ana"


@pytest.mark.asyncio
async def test_default_tenant_name_falls_back_to_email(repos: Repositories, auth_api: _FakeAuthApi) -> None:
    await assign_tenant_claims("bo@acme.test", "bo-co", tenants=repos.tenants, auth_api=auth_api)
    assert (await repos.tenants.get("bo-co")).name == "bo@acme.test's Company"


@pytest.mark.asyncio
async def test_unknown_email(repos: Repositories, auth_api: _FakeAuthApi, fake_db: FakeFirestore) -> None:
    with pytest.raises(IdentityNotFoundError):
        await assign_tenant_claims("ghost@acme.test", "acme", tenants=repos.tenants, auth_api=auth_api)
    assert fake_db.writes == []


@pytest.mark.asyncio
async def test_get_and_list_claims(auth_api: _FakeAuthApi) -> None:
    auth_api.users["ana@acme.test"].custom_claims = {"tenantId": "acme", "canEdit": True}
    ana = await get_user_claims("ana@acme.test", auth_api=auth_api)
    assert (ana.tenant_id, ana.can_edit) == ("acme", True)

    users = await list_user_claims(auth_api=auth_api)
    assert {u.uid for u in users} == {"u-ana", "u-bo"}
    bo = next(u for u in users if u.uid == "u-bo")
    assert bo.tenant_id is None and bo.can_edit is False


# -- CLI ---------------------------------------------------------------------


@pytest.fixture
def cli_env(monkeypatch, fake_db: FakeFirestore, auth_api: _FakeAuthApi):
    monkeypatch.setenv("FIRESTORE_EMULATOR_HOST", "127.0.0.1:8080")
    monkeypatch.setattr(set_custom_claims, "init_structured_logging", lambda **kw: None)
    tenants = TenantRepository(fake_db)

    async def _assign(email, tenant_id, can_edit=True):
        return await assign_tenant_claims(email, tenant_id, can_edit, tenants=tenants, auth_api=auth_api)

    async def _get(email):
        return await get_user_claims(email, auth_api=auth_api)

    async def _list(max_results=100):
        return await list_user_claims(max_results, auth_api=auth_api)

    monkeypatch.setattr(set_custom_claims, "assign_tenant_claims", _assign)
    monkeypatch.setattr(set_custom_claims, "get_user_claims", _get)
    monkeypatch.setattr(set_custom_claims, "list_user_claims", _list)
    return auth_api


def test_cli_set_prints_creation_then_reuse(cli_env: _FakeAuthApi, capsys) -> None:
    assert set_custom_claims.main(["set", "ana@acme.test", "acme"]) == 0
    out = capsys.readouterr().out
    assert "Tenant acme created" in out
    assert "CanEdit:  true" in out
    assert cli_env.users["ana@acme.test"].custom_claims == {"tenantId": "acme", "canEdit": True}

    assert set_custom_claims.main(["set", "bo@acme.test", "acme", "false"]) == 0
    out = capsys.readouterr().out
    assert "Tenant acme already exists" in out
    assert cli_env.users["bo@acme.test"].custom_claims == {"tenantId": "acme", "canEdit": False}


def test_cli_unknown_user_exits_1(cli_env: _FakeAuthApi, capsys) -> None:
    assert set_custom_claims.main(["set", "ghost@acme.test", "acme"]) == 1
    assert "ghost@acme.test" in capsys.readouterr().err


def test_cli_usage_errors_exit_1(cli_env: _FakeAuthApi) -> None:
    assert set_custom_claims.main(["set", "ana@acme.test"]) == 1
    assert set_custom_claims.main(["frobnicate"]) == 1
    assert set_custom_claims.main([]) == 0


def test_cli_get_and_list(cli_env: _FakeAuthApi, capsys) -> None:
    cli_env.users["ana@acme.test"].custom_claims = {"tenantId": "acme", "canEdit": True}
    assert set_custom_claims.main(["get", "ana@acme.test"]) == 0
    assert '"tenantId": "acme"' in capsys.readouterr().out

    assert set_custom_claims.main(["list"]) == 0
    out = capsys.readouterr().out
    assert "Total users: 2" in out
    assert "Custom claims: none" in out


def test_user_claims_helpers() -> None:
    uc = UserClaims(uid="u", email=None, display_name=None, custom_claims={"tenantId": "t", "canEdit": "true"})
    assert uc.tenant_id == "t"
    assert uc.can_edit is False
