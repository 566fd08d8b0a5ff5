"""
Identity provider boundary.

The session lifecycle talks to the provider only through `IdentityProvider`.
`FirebaseIdentityProvider` is the production adapter; tests use an in-memory
fake with the same surface.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RawIdentity:
    """Signed-in user as reported by the provider, before claims resolution."""

    subject_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    raw_token: str = field(default="", repr=False)


IdentityListener = Callable[[Optional[RawIdentity]], None]


class IdentityProviderError(RuntimeError):
    """
    Provider-side failure (bad credentials, weak password, network, ...).

    `code` is the provider's error code when it sent one, e.g.
    `EMAIL_NOT_FOUND`, `INVALID_PASSWORD`, `EMAIL_EXISTS`.
    """

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


@runtime_checkable
class IdentityProvider(Protocol):
    @property
    def current_identity(self) -> Optional[RawIdentity]: ...

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """
        Register for "current identity changed" events and return an
        unsubscribe callable. The listener is called once right away with
        the current identity (None when signed out). It may be called from
        any thread.
        """
        ...

    async def sign_in(self, email: str, password: str) -> RawIdentity: ...

    async def sign_up(self, email: str, password: str, display_name: str) -> RawIdentity: ...

    async def sign_out(self) -> None: ...

    async def fetch_token_claims(self, *, force_refresh: bool = False) -> Mapping[str, Any]:
        """Verified claims of the current identity's token."""
        ...
