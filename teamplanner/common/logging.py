"""
JSON-lines logging for the planner core and its scripts.

Every line carries the process identity (service, env, version, sha), the
bound correlation id, a stable `event_type` and the caller's extra fields.
Emit semantic events through `log_event(logger, "claims.resolved", ...)`.

Credential-shaped fields (passwords, ID/refresh tokens) are replaced with
"[REDACTED]" at any nesting depth before serialization.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping, Optional

_CORRELATION_ID: ContextVar[Optional[str]] = ContextVar("teamplanner_correlation_id", default=None)

_SECRET_KEYS: frozenset[str] = frozenset(
    {"password", "id_token", "idtoken", "refresh_token", "refreshtoken", "raw_token", "authorization"}
)

_SEVERITIES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_SEVERITY_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL", "NOTICE": "INFO"}

# Attributes every LogRecord has; anything else on a record came from `extra`.
_RECORD_ATTRS: frozenset[str] = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "event_type",
    "correlation_id",
}


def _first_env(*names: str, default: str) -> str:
    for name in names:
        v = (os.getenv(name) or "").strip()
        if v:
            return v
    return default


@dataclass(frozen=True, slots=True)
class ServiceIdentity:
    service: str
    env: str
    version: str
    sha: str

    @classmethod
    def resolve(
        cls,
        *,
        service: Optional[str] = None,
        env: Optional[str] = None,
        version: Optional[str] = None,
        sha: Optional[str] = None,
    ) -> "ServiceIdentity":
        return cls(
            service=service or _first_env("SERVICE_NAME", "K_SERVICE", default="teamplanner"),
            env=env or _first_env("ENV", "ENVIRONMENT", default="unknown"),
            version=version or _first_env("APP_VERSION", "K_REVISION", default="unknown"),
            sha=sha or _first_env("GIT_SHA", "COMMIT_SHA", default="unknown"),
        )


def _severity(value: Any) -> str:
    if isinstance(value, int):
        value = logging.getLevelName(value)
    s = str(value or "INFO").strip().upper()
    s = _SEVERITY_ALIASES.get(s, s)
    return s if s in _SEVERITIES else "INFO"


def _scrub(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            str(k): ("[REDACTED]" if str(k).lower() in _SECRET_KEYS else _scrub(v)) for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    return value


def current_correlation_id() -> Optional[str]:
    return _CORRELATION_ID.get()


@contextmanager
def bind_request_id(*, request_id: Optional[str] = None) -> Iterator[str]:
    """Tag every log line emitted inside the block with one correlation id."""
    rid = (request_id or "").strip()[:128] or uuid.uuid4().hex
    token = _CORRELATION_ID.set(rid)
    try:
        yield rid
    finally:
        _CORRELATION_ID.reset(token)


class JsonLogFormatter(logging.Formatter):
    def __init__(self, identity: ServiceIdentity) -> None:
        super().__init__()
        self._identity = identity

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        rid = getattr(record, "correlation_id", None) or current_correlation_id()
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "severity": _severity(record.levelname),
            "service": self._identity.service,
            "env": self._identity.env,
            "version": self._identity.version,
            "sha": self._identity.sha,
            "request_id": rid,
            "correlation_id": rid,
            "event_type": getattr(record, "event_type", None) or "log",
            "message": record.getMessage().replace("\n", " ").strip(),
            "logger": record.name,
        }
        payload.update(_scrub({k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}))

        if record.exc_info:
            payload["exception"] = "".join(traceback.format_exception(*record.exc_info))[-8000:]

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def init_structured_logging(
    *,
    service: Optional[str] = None,
    env: Optional[str] = None,
    version: Optional[str] = None,
    sha: Optional[str] = None,
    level: str | int | None = None,
) -> None:
    """
    Route the root logger to stdout as JSON lines.

    Replaces any handlers already installed, so the last call wins.
    """
    lvl = _severity(level or os.getenv("LOG_LEVEL") or "INFO")
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter(ServiceIdentity.resolve(service=service, env=env, version=version, sha=sha)))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(lvl)
    logging.captureWarnings(True)


def log_event(
    logger: logging.Logger,
    event_type: str,
    *,
    severity: str = "INFO",
    message: Optional[str] = None,
    **fields: Any,
) -> None:
    logger.log(
        getattr(logging, _severity(severity)),
        message or event_type,
        extra={"event_type": event_type, **fields},
    )
