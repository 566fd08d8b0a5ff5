"""
Process-wide Firebase Admin app and Firestore client.

Store access (repositories, provisioning) goes through `init_firebase_admin`,
which runs the local-execution Firestore guard before initialising the app.
ID token verification (bearer dependency, identity adapter) only needs the
app, so it calls `init_firebase_app` directly. Either way the app is
initialised once with Application Default Credentials.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Optional

import firebase_admin
import google.auth
from firebase_admin import credentials, firestore
from google.auth import exceptions as gauth_exceptions

from teamplanner.common.config import _get_nonempty_env, _parse_bool_env, resolve_project_id
from teamplanner.common.logging import log_event

logger = logging.getLogger(__name__)

_CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
_MANAGED_RUNTIME_VARS = ("K_SERVICE", "CLOUD_RUN_JOB", "FUNCTION_TARGET")

_init_lock = threading.Lock()


def is_local_execution() -> bool:
    """ENV=local, or no managed GCP runtime markers (Cloud Run, Functions, App Engine)."""
    if (os.getenv("ENV") or "").strip().lower() == "local":
        return True
    if any(_get_nonempty_env(name) for name in _MANAGED_RUNTIME_VARS):
        return False
    return not any(k.startswith("GAE_") for k in os.environ)


def require_firestore_emulator_or_allow_prod(*, caller: str) -> None:
    """
    Refuse production Firestore from a developer machine.

    Local runs must point FIRESTORE_EMULATOR_HOST at an emulator or opt in with
    ALLOW_PROD_FIRESTORE=1; otherwise raises SystemExit carrying the fix-it text.
    """
    if not is_local_execution():
        return
    if _get_nonempty_env("FIRESTORE_EMULATOR_HOST") or _parse_bool_env("ALLOW_PROD_FIRESTORE"):
        return

    log_event(logger, "firestore.prod_access_refused", severity="ERROR", caller=caller)
    raise SystemExit(
        "ERROR: refusing to use production Firestore from local execution "
        f"(caller={caller}).\n"
        "  Set FIRESTORE_EMULATOR_HOST (e.g. 127.0.0.1:8080), or\n"
        "  set ALLOW_PROD_FIRESTORE=1 to target the real project on purpose."
    )


def _resolve_project(project_id: Optional[str]) -> str:
    resolved = resolve_project_id(project_id)
    if resolved:
        return resolved
    try:
        _, resolved = google.auth.default(scopes=[_CLOUD_PLATFORM_SCOPE])
    except gauth_exceptions.DefaultCredentialsError:
        resolved = None
    if not resolved:
        raise RuntimeError(
            "Firebase project id could not be resolved; set FIREBASE_PROJECT_ID "
            "(or GOOGLE_CLOUD_PROJECT)."
        )
    return resolved


def init_firebase_admin(*, project_id: Optional[str] = None) -> None:
    """Initialise the default Firebase Admin app for Firestore access (guarded)."""
    require_firestore_emulator_or_allow_prod(caller="teamplanner.persistence.init_firebase_admin")
    init_firebase_app(project_id=project_id)


def init_firebase_app(*, project_id: Optional[str] = None) -> None:
    """
    Initialise the default Firebase Admin app once per process (ADC).

    Unguarded: ID token verification never touches Firestore, so it must not
    trip the local Firestore guard. Failures surface as RuntimeError.
    """
    with _init_lock:
        if firebase_admin._apps:
            return
        try:
            cred = credentials.ApplicationDefault()
        except gauth_exceptions.DefaultCredentialsError as e:
            raise RuntimeError(
                "Application Default Credentials unavailable for Firebase Admin SDK; "
                "run `gcloud auth application-default login` locally."
            ) from e

        resolved = _resolve_project(project_id)
        firebase_admin.initialize_app(cred, {"projectId": resolved})
        log_event(
            logger,
            "firebase.initialized",
            severity="INFO",
            project_id=resolved,
            firestore_emulator=_get_nonempty_env("FIRESTORE_EMULATOR_HOST"),
            auth_emulator=_get_nonempty_env("FIREBASE_AUTH_EMULATOR_HOST"),
        )


def get_firestore_client(*, project_id: Optional[str] = None):
    """
    The Firestore client shared by every repository.

    No client-side locking: concurrent writes to one document resolve
    last-write-wins in the store.
    """
    init_firebase_admin(project_id=project_id)
    return firestore.client()
