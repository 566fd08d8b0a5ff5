"""
Firebase Auth adapter for the session lifecycle.

Email/password sign-in and sign-up go through the Identity Toolkit REST API
(the same endpoints the web SDK calls); token refresh goes through the Secure
Token API. Claims are read from the ID token with
`firebase_admin.auth.verify_id_token`, so they are signature- and
expiry-checked before the claims resolver sees them.

With FIREBASE_AUTH_EMULATOR_HOST set, both REST APIs are routed to the
emulator and firebase_admin accepts the emulator's unsigned tokens.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Mapping, Optional

import httpx
from firebase_admin import auth as firebase_auth
from pydantic import BaseModel, Field, ValidationError
from pydantic.config import ConfigDict

from teamplanner.common.config import PlannerSettings
from teamplanner.common.logging import log_event
from teamplanner.persistence.firebase_client import init_firebase_app

from .provider import IdentityListener, IdentityProviderError, RawIdentity

logger = logging.getLogger(__name__)

_IDENTITY_TOOLKIT = "identitytoolkit.googleapis.com/v1"
_SECURE_TOKEN = "securetoken.googleapis.com/v1/token"


class SignInResponse(BaseModel):
    """accounts:signInWithPassword / accounts:signUp response."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    local_id: str = Field(alias="localId")
    id_token: str = Field(alias="idToken", repr=False)
    refresh_token: str = Field(alias="refreshToken", repr=False)
    email: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    expires_in: Optional[str] = Field(default=None, alias="expiresIn")


class RefreshResponse(BaseModel):
    """Secure Token API response (snake_case on the wire)."""

    model_config = ConfigDict(extra="ignore")

    user_id: str
    id_token: str = Field(repr=False)
    refresh_token: str = Field(repr=False)
    expires_in: Optional[str] = None


class ErrorBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: Optional[int] = None
    message: str = ""


class ErrorEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    error: ErrorBody


def _error_code(message: str) -> str:
    # "WEAK_PASSWORD : Password should be at least 6 characters" -> "WEAK_PASSWORD"
    return message.split(":", 1)[0].strip().split(" ", 1)[0]


class FirebaseIdentityProvider:
    def __init__(
        self,
        *,
        api_key: str,
        project_id: Optional[str] = None,
        auth_emulator_host: Optional[str] = None,
        timeout_s: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
        verify_token: Optional[Callable[[str], Mapping[str, Any]]] = None,
    ) -> None:
        if not str(api_key or "").strip():
            raise ValueError("api_key is required (set FIREBASE_API_KEY)")
        self._api_key = api_key.strip()
        self._project_id = project_id
        if auth_emulator_host:
            host = auth_emulator_host.strip().rstrip("/")
            self._toolkit_base = f"http://{host}/{_IDENTITY_TOOLKIT}"
            self._secure_token_url = f"http://{host}/{_SECURE_TOKEN}"
        else:
            self._toolkit_base = f"https://{_IDENTITY_TOOLKIT}"
            self._secure_token_url = f"https://{_SECURE_TOKEN}"
        self._timeout_s = float(timeout_s)
        self._client = http_client
        self._owns_client = http_client is None
        self._verify_token = verify_token or self._verify_with_admin_sdk

        self._current: Optional[RawIdentity] = None
        self._refresh_token: Optional[str] = None
        self._listeners: list[IdentityListener] = []
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: PlannerSettings, **kwargs: Any) -> "FirebaseIdentityProvider":
        return cls(
            api_key=settings.firebase_api_key or "",
            project_id=settings.firebase_project_id,
            auth_emulator_host=settings.auth_emulator_host,
            timeout_s=settings.identity_http_timeout_s,
            **kwargs,
        )

    @property
    def current_identity(self) -> Optional[RawIdentity]:
        return self._current

    # -- events --------------------------------------------------------------

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)
            current = self._current
        listener(current)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _set_current(self, identity: Optional[RawIdentity], refresh_token: Optional[str]) -> None:
        with self._lock:
            self._current = identity
            self._refresh_token = refresh_token
            listeners = list(self._listeners)
        for listener in listeners:
            listener(identity)

    # -- REST ----------------------------------------------------------------

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
        return self._client

    async def _post(self, url: str, *, operation: str, json: Optional[dict] = None, data: Optional[dict] = None) -> Any:
        try:
            response = await self._http().post(url, params={"key": self._api_key}, json=json, data=data)
        except httpx.HTTPError as e:
            raise IdentityProviderError(f"{operation}: {type(e).__name__}: {e}", code="NETWORK_ERROR") from e

        if response.status_code >= 400:
            message = f"HTTP {response.status_code}"
            code: Optional[str] = None
            try:
                envelope = ErrorEnvelope.model_validate(response.json())
                message = envelope.error.message or message
                code = _error_code(envelope.error.message) or None
            except (ValueError, ValidationError):
                pass
            raise IdentityProviderError(f"{operation} failed: {message}", code=code, status_code=response.status_code)
        return response.json()

    async def _sign_in_with_password(self, email: str, password: str) -> SignInResponse:
        body = await self._post(
            f"{self._toolkit_base}/accounts:signInWithPassword",
            operation="sign_in",
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        return SignInResponse.model_validate(body)

    async def _refresh(self) -> RefreshResponse:
        refresh_token = self._refresh_token
        if not refresh_token:
            raise IdentityProviderError("No signed-in user", code="NO_CURRENT_USER")
        body = await self._post(
            self._secure_token_url,
            operation="refresh_token",
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
        )
        refreshed = RefreshResponse.model_validate(body)
        with self._lock:
            cur = self._current
            if cur is not None and cur.subject_id == refreshed.user_id:
                self._current = RawIdentity(
                    subject_id=cur.subject_id,
                    email=cur.email,
                    display_name=cur.display_name,
                    raw_token=refreshed.id_token,
                )
                self._refresh_token = refreshed.refresh_token
        return refreshed

    # -- operations ----------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> RawIdentity:
        resp = await self._sign_in_with_password(email, password)
        identity = RawIdentity(
            subject_id=resp.local_id,
            email=resp.email or email,
            display_name=resp.display_name or None,
            raw_token=resp.id_token,
        )
        self._set_current(identity, resp.refresh_token)
        log_event(logger, "identity.signed_in", severity="INFO", subject_id=identity.subject_id)
        return identity

    async def sign_up(self, email: str, password: str, display_name: str) -> RawIdentity:
        resp = SignInResponse.model_validate(
            await self._post(
                f"{self._toolkit_base}/accounts:signUp",
                operation="sign_up",
                json={"email": email, "password": password, "returnSecureToken": True},
            )
        )
        name = str(display_name or "").strip()
        if name:
            await self._post(
                f"{self._toolkit_base}/accounts:update",
                operation="update_profile",
                json={"idToken": resp.id_token, "displayName": name, "returnSecureToken": False},
            )
        identity = RawIdentity(
            subject_id=resp.local_id,
            email=resp.email or email,
            display_name=name or None,
            raw_token=resp.id_token,
        )
        self._set_current(identity, resp.refresh_token)
        log_event(logger, "identity.signed_up", severity="INFO", subject_id=identity.subject_id)
        return identity

    async def sign_out(self) -> None:
        prev = self._current
        self._set_current(None, None)
        if prev is not None:
            log_event(logger, "identity.signed_out", severity="INFO", subject_id=prev.subject_id)

    async def fetch_token_claims(self, *, force_refresh: bool = False) -> Mapping[str, Any]:
        if self._current is None:
            raise IdentityProviderError("No signed-in user", code="NO_CURRENT_USER")
        if force_refresh:
            await self._refresh()
        token = self._current.raw_token if self._current is not None else ""
        try:
            return await asyncio.to_thread(self._verify_token, token)
        except firebase_auth.ExpiredIdTokenError:
            if force_refresh:
                raise
            await self._refresh()
            token = self._current.raw_token if self._current is not None else ""
            return await asyncio.to_thread(self._verify_token, token)

    def _verify_with_admin_sdk(self, token: str) -> Mapping[str, Any]:
        init_firebase_app(project_id=self._project_id)
        return firebase_auth.verify_id_token(token)

    async def aclose(self) -> None:
        client, self._client = self._client, None
        if client is not None and self._owns_client:
            await client.aclose()
