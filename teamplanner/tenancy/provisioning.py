"""
Privileged claims provisioning (Firebase Admin SDK).

Assigning a tenant is a two-step protocol:

1. `assign_tenant_claims(email, tenant_id, can_edit)` ensures the tenant
   document exists and sets `{tenantId, canEdit}` as custom claims.
2. The user's session calls `force_claims_refresh()` (or signs in again);
   tokens issued before step 1 do not carry the new claims.

Runs with Application Default Credentials; never from an end-user process.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from firebase_admin import auth as firebase_auth

from teamplanner.common.logging import log_event
from teamplanner.common.validation import require_segment, require_text
from teamplanner.persistence.firebase_client import init_firebase_admin
from teamplanner.planning.repository import TenantRepository

from .claims import CLAIM_CAN_EDIT, CLAIM_TENANT_ID

logger = logging.getLogger(__name__)


class ProvisioningError(RuntimeError):
    pass


class IdentityNotFoundError(ProvisioningError):
    def __init__(self, email: str) -> None:
        super().__init__(f"No user with email {email!r}")
        self.email = email


@dataclass(frozen=True, slots=True)
class ProvisioningResult:
    uid: str
    email: str
    tenant_id: str
    can_edit: bool
    tenant_created: bool


@dataclass(frozen=True, slots=True)
class UserClaims:
    uid: str
    email: Optional[str]
    display_name: Optional[str]
    custom_claims: Mapping[str, Any]

    @property
    def tenant_id(self) -> Optional[str]:
        v = self.custom_claims.get(CLAIM_TENANT_ID)
        return str(v) if v else None

    @property
    def can_edit(self) -> bool:
        return self.custom_claims.get(CLAIM_CAN_EDIT) is True


def default_tenant_name(display_name: Optional[str], email: str) -> str:
    return f"{(display_name or '').strip() or email}'s Company"


def _auth_api(auth_api: Any) -> Any:
    if auth_api is not None:
        return auth_api
    init_firebase_admin()
    return firebase_auth


async def _lookup(api: Any, email: str) -> Any:
    try:
        return await asyncio.to_thread(api.get_user_by_email, email)
    except firebase_auth.UserNotFoundError as e:
        log_event(logger, "provisioning.identity_not_found", severity="WARNING", email=email)
        raise IdentityNotFoundError(email) from e


def _to_user_claims(user: Any) -> UserClaims:
    return UserClaims(
        uid=str(user.uid),
        email=getattr(user, "email", None),
        display_name=getattr(user, "display_name", None),
        custom_claims=dict(getattr(user, "custom_claims", None) or {}),
    )


async def assign_tenant_claims(
    email: str,
    tenant_id: str,
    can_edit: bool = True,
    *,
    tenants: Optional[TenantRepository] = None,
    auth_api: Any = None,
) -> ProvisioningResult:
    """
    Look up the user by email, ensure the tenant exists (default name
    "<display name or email>'s Company", owned by the user), then replace the
    user's custom claims with `{tenantId, canEdit}`.
    """
    email = require_text(email, field="email")
    tenant_id = require_segment(tenant_id, field="tenant_id")
    api = _auth_api(auth_api)
    repo = tenants or TenantRepository()

    user = await _lookup(api, email)
    uid = str(user.uid)

    _, created = await repo.ensure(
        tenant_id,
        default_name=default_tenant_name(getattr(user, "display_name", None), email),
        owner_id=uid,
    )
    log_event(
        logger,
        "provisioning.tenant_created" if created else "provisioning.tenant_reused",
        severity="INFO",
        tenant_id=tenant_id,
        uid=uid,
    )

    claims = {CLAIM_TENANT_ID: tenant_id, CLAIM_CAN_EDIT: bool(can_edit)}
    await asyncio.to_thread(api.set_custom_user_claims, uid, claims)
    log_event(
        logger,
        "provisioning.claims_assigned",
        severity="INFO",
        tenant_id=tenant_id,
        uid=uid,
        can_edit=bool(can_edit),
    )
    return ProvisioningResult(
        uid=uid,
        email=email,
        tenant_id=tenant_id,
        can_edit=bool(can_edit),
        tenant_created=created,
    )


async def get_user_claims(email: str, *, auth_api: Any = None) -> UserClaims:
    api = _auth_api(auth_api)
    user = await _lookup(api, require_text(email, field="email"))
    return _to_user_claims(user)


async def list_user_claims(max_results: int = 100, *, auth_api: Any = None) -> list[UserClaims]:
    """First page of users (up to `max_results`) with their custom claims."""
    api = _auth_api(auth_api)
    page = await asyncio.to_thread(api.list_users, max_results=max_results)
    return [_to_user_claims(u) for u in page.users]
