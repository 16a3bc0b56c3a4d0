from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel, Field


@dataclass
class CredentialRecord:
    """Per-identity SSO state kept in the brain. Cleared on logout, never deleted."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    groups: List[str] = field(default_factory=list)

    @property
    def authenticated(self) -> bool:
        return bool(self.access_token)


@dataclass(frozen=True)
class LoginSession:
    """One-time correlation between a login token and the chat context that asked for it."""

    identity: str
    room: Optional[str] = None
    team: Optional[str] = None
    # Set when the browser is sent to the identity provider.
    nonce: Optional[str] = None
    code_verifier: Optional[str] = None


@dataclass(frozen=True)
class AccessResult:
    authorized: bool
    login_url: Optional[str] = None


class ProviderProfile(BaseModel):
    """What the identity provider hands back after a successful code exchange."""

    access_token: str
    refresh_token: Optional[str] = None
    groups: List[str] = Field(default_factory=list)
