from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

TRUTHY = {"1", "true", "t", "yes", "y", "on"}
FALSY = {"0", "false", "f", "no", "n", "off"}

DEFAULT_TIMEZONE = "UTC"
DEFAULT_IDENTITY_HTTP_TIMEOUT_S = 10.0


def _get_nonempty_env(name: str) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return None
    s = str(v).strip()
    return s if s else None


def _parse_bool(value: object | None) -> Optional[bool]:
    if value is None:
        return None
    s = str(value).strip().lower()
    if not s:
        return None
    if s in TRUTHY:
        return True
    if s in FALSY:
        return False
    return None


def _parse_bool_env(name: str, default: bool = False) -> bool:
    parsed = _parse_bool(os.getenv(name))
    return default if parsed is None else parsed


def _parse_float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError:
        return float(default)


def resolve_project_id(explicit_project_id: Optional[str] = None) -> Optional[str]:
    if explicit_project_id:
        return explicit_project_id
    for k in ("FIREBASE_PROJECT_ID", "GOOGLE_CLOUD_PROJECT", "GCLOUD_PROJECT"):
        v = _get_nonempty_env(k)
        if v:
            return v
    return None


def load_timezone(name: Optional[str]) -> ZoneInfo:
    """
    IANA zone used for day boundaries in the planning grid.

    Unknown names raise ValueError so a typo fails at startup, not at query time.
    """
    key = (name or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown PLANNER_TIMEZONE: {key!r}") from e


@dataclass(frozen=True, slots=True)
class PlannerSettings:
    """
    Process configuration, sourced from the environment.

    - firebase_project_id: FIREBASE_PROJECT_ID (fallback GOOGLE_CLOUD_PROJECT)
    - firebase_api_key: FIREBASE_API_KEY (web API key, identity REST API)
    - auth_emulator_host / firestore_emulator_host: local emulators
    - timezone: PLANNER_TIMEZONE (day boundaries for records)
    """

    firebase_project_id: Optional[str]
    firebase_api_key: Optional[str]
    auth_emulator_host: Optional[str]
    firestore_emulator_host: Optional[str]
    allow_prod_firestore: bool
    timezone: ZoneInfo
    identity_http_timeout_s: float
    service_name: str
    env: str
    log_level: str

    @classmethod
    def from_env(cls) -> "PlannerSettings":
        return cls(
            firebase_project_id=resolve_project_id(),
            firebase_api_key=_get_nonempty_env("FIREBASE_API_KEY"),
            auth_emulator_host=_get_nonempty_env("FIREBASE_AUTH_EMULATOR_HOST"),
            firestore_emulator_host=_get_nonempty_env("FIRESTORE_EMULATOR_HOST"),
            allow_prod_firestore=_parse_bool_env("ALLOW_PROD_FIRESTORE", default=False),
            timezone=load_timezone(os.getenv("PLANNER_TIMEZONE")),
            identity_http_timeout_s=_parse_float_env("IDENTITY_HTTP_TIMEOUT_S", DEFAULT_IDENTITY_HTTP_TIMEOUT_S),
            service_name=_get_nonempty_env("SERVICE_NAME") or "teamplanner",
            env=_get_nonempty_env("ENV") or "local",
            log_level=(_get_nonempty_env("LOG_LEVEL") or "INFO").upper(),
        )
