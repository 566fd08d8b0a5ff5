from __future__ import annotations

import asyncio
import logging

from fastapi import Depends, HTTPException, Request, status
from firebase_admin import auth as firebase_auth

from teamplanner.common.logging import log_event
from teamplanner.persistence.firebase_client import init_firebase_app

from .claims import resolve_identity
from .context import Identity

logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization") or ""
    if not header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization: Bearer <token>",
        )
    token = header.removeprefix("Bearer ").strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Empty bearer token")
    return token


def _verify(token: str) -> dict:
    init_firebase_app()
    return firebase_auth.verify_id_token(token)


async def get_identity(request: Request) -> Identity:
    """
    Verify the Firebase ID token and resolve it into a tenant-scoped Identity.

    401 when the token is missing or fails verification, 403 when the
    identity carries no `tenantId` claim yet.
    """
    # Never log the token value; only whether a header was sent.
    token_present = bool((request.headers.get("Authorization") or "").strip())
    token = _bearer_token(request)

    async def _fetch() -> dict:
        return await asyncio.to_thread(_verify, token)

    identity = await resolve_identity(_fetch)
    if identity is None:
        log_event(
            logger,
            "auth_failure",
            severity="WARNING",
            auth_provider="firebase",
            reason="verify_id_token_failed",
            authorization_present=token_present,
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid ID token")

    if not identity.is_scoped:
        log_event(
            logger,
            "auth_failure",
            severity="WARNING",
            auth_provider="firebase",
            reason="missing_tenant_id_claim",
            subject_id=identity.subject_id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tenant assigned to this account; assign one and refresh the token",
        )

    log_event(
        logger,
        "auth_success",
        severity="INFO",
        auth_provider="firebase",
        subject_id=identity.subject_id,
        tenant_id=identity.tenant_id,
        can_edit=identity.can_edit,
    )
    return identity


IdentityDep = Depends(get_identity)
