"""
Claims resolver: verified token claims -> resolved Identity.

Custom claims are attached out-of-band by provisioning
(`teamplanner.tenancy.provisioning.assign_tenant_claims`):

  {"tenantId": "<tenant id>", "canEdit": true|false}

Resolution is pure over already-verified claims. Signature and expiry checks
belong to the identity provider; fetching the claims is the only I/O and a
failure there yields None ("no identity"), never an exception.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from teamplanner.common.logging import log_event

from .context import Identity

logger = logging.getLogger(__name__)

CLAIM_TENANT_ID = "tenantId"
CLAIM_CAN_EDIT = "canEdit"

# Back-compat spellings accepted on read; provisioning only writes the canonical keys.
_TENANT_ID_ALIASES = (CLAIM_TENANT_ID, "tenant_id")
_CAN_EDIT_ALIASES = (CLAIM_CAN_EDIT, "can_edit")


def _claim_tenant_id(claims: Mapping[str, Any]) -> Optional[str]:
    for key in _TENANT_ID_ALIASES:
        raw = claims.get(key)
        if raw is None or isinstance(raw, bool):
            continue
        s = str(raw).strip()
        if s and "/" not in s:
            return s
    return None


def _claim_can_edit(claims: Mapping[str, Any]) -> bool:
    for key in _CAN_EDIT_ALIASES:
        if key not in claims:
            continue
        raw = claims.get(key)
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str):
            return raw.strip().lower() in {"1", "true", "yes"}
        return False
    return False


def identity_from_claims(
    claims: Mapping[str, Any],
    *,
    subject_id: Optional[str] = None,
    email: Optional[str] = None,
    display_name: Optional[str] = None,
) -> Identity:
    """
    Derive an Identity from verified claims.

    Explicit subject/email/display name (from the provider's user record)
    win over the standard token claims (`uid`/`sub`, `email`, `name`).
    Raises ValueError when no subject id can be found.
    """
    uid = str(subject_id or claims.get("uid") or claims.get("sub") or "").strip()
    if not uid:
        raise ValueError("claims carry no subject id")

    mail = str(email or claims.get("email") or "").strip()
    name = str(display_name or claims.get("name") or mail or "Unknown User").strip()

    return Identity(
        subject_id=uid,
        email=mail,
        display_name=name,
        tenant_id=_claim_tenant_id(claims),
        can_edit=_claim_can_edit(claims),
        claims=dict(claims),
    )


ClaimsFetcher = Callable[[], Awaitable[Mapping[str, Any]]]


async def resolve_identity(
    fetch_claims: ClaimsFetcher,
    *,
    subject_id: Optional[str] = None,
    email: Optional[str] = None,
    display_name: Optional[str] = None,
) -> Optional[Identity]:
    """
    Fetch verified claims and resolve them into an Identity.

    Returns None when fetching or parsing the claims fails (network error,
    malformed token); callers treat None exactly like "not signed in".
    """
    try:
        claims = await fetch_claims()
        identity = identity_from_claims(
            claims or {},
            subject_id=subject_id,
            email=email,
            display_name=display_name,
        )
    except Exception as e:
        log_event(
            logger,
            "claims.resolve_failed",
            severity="WARNING",
            subject_id=subject_id,
            error=f"{type(e).__name__}: {e}",
        )
        return None

    log_event(
        logger,
        "claims.resolved",
        severity="INFO",
        subject_id=identity.subject_id,
        tenant_id=identity.tenant_id,
        can_edit=identity.can_edit,
        scoped=identity.is_scoped,
    )
    return identity
