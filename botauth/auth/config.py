"""
Configuration for the directory (LDAP) and SSO (OIDC) authorization sources.

Both sources are optional: when their settings are absent each one degrades to
a no-op that never grants access, so roster-only deployments keep working.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except Exception:
        return default


def parse_group_list(value: Optional[str]) -> Tuple[str, ...]:
    """Split a semicolon-delimited group DN list. An empty value is an empty list."""
    if not value:
        return ()
    return tuple(value.split(";"))


@dataclass(frozen=True)
class DirectoryConfig:
    protocol: str
    server: Optional[str]
    port: Optional[int]
    bind_user: Optional[str]
    bind_password: Optional[str]

    org_root: Optional[str]
    email_field: str
    group_membership_field: str

    power_groups: Tuple[str, ...]
    reader_groups: Tuple[str, ...]

    connect_timeout_seconds: int
    receive_timeout_seconds: int

    @property
    def configured(self) -> bool:
        """A bind is only attempted when server, port and bind credentials are all set."""
        return bool(self.server and self.port and self.bind_user and self.bind_password)

    @property
    def url(self) -> str:
        return f"{self.protocol}://{self.server}:{self.port}"


@dataclass(frozen=True)
class AuthConfig:
    sso_flag: bool
    public_base_url: Optional[str]  # Required to build login/callback URLs

    # OIDC client (token exchange for the SSO callback)
    oidc_discovery_url: Optional[str]
    oidc_client_id: Optional[str]
    oidc_client_secret: Optional[str]
    oidc_scopes: str
    oidc_groups_claim: str

    # Where to send the browser after a completed login ({room}/{team} placeholders)
    sso_return_url: Optional[str]

    @property
    def sso_enabled(self) -> bool:
        return bool(self.sso_flag and self.public_base_url)

    @property
    def oidc_enabled(self) -> bool:
        """OIDC is enabled if discovery URL and credentials are configured."""
        return bool(self.oidc_discovery_url and self.oidc_client_id and self.oidc_client_secret)


@lru_cache(maxsize=1)
def load_directory_config() -> DirectoryConfig:
    """
    Load LDAP settings from environment variables.

    The bind is attempted only if LDAP_SERVER, LDAP_PORT, LDAP_BIND_USER and
    LDAP_BIND_PASSWORD are all set.
    """
    protocol = (_env_str("LDAP_PROTOCOL") or "ldap").lower()
    port_raw = _env_str("LDAP_PORT")
    port: Optional[int] = None
    if port_raw:
        try:
            port = int(port_raw)
        except ValueError:
            port = None

    return DirectoryConfig(
        protocol=protocol,
        server=_env_str("LDAP_SERVER"),
        port=port,
        bind_user=_env_str("LDAP_BIND_USER"),
        bind_password=(os.getenv("LDAP_BIND_PASSWORD", "") or "") or None,
        org_root=_env_str("LDAP_ORG_ROOT"),
        email_field=_env_str("LDAP_EMAIL_FIELD") or "mail",
        group_membership_field=_env_str("LDAP_GROUP_MEMBERSHIP_FIELD") or "uniqueMember",
        power_groups=parse_group_list(_env_str("LDAP_POWER_GROUPS")),
        reader_groups=parse_group_list(_env_str("LDAP_READER_GROUPS")),
        connect_timeout_seconds=max(1, _env_int("LDAP_CONNECT_TIMEOUT_SECONDS", 5)),
        receive_timeout_seconds=max(1, _env_int("LDAP_RECEIVE_TIMEOUT_SECONDS", 10)),
    )


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load SSO configuration from environment variables.

    SSO login prompts are issued only when SSO_ENABLED is truthy and
    AUTH_PUBLIC_BASE_URL is set. The callback server additionally needs
    OIDC_DISCOVERY_URL, OIDC_CLIENT_ID and OIDC_CLIENT_SECRET.
    """
    base = _env_str("AUTH_PUBLIC_BASE_URL")
    return AuthConfig(
        sso_flag=_env_bool("SSO_ENABLED", False),
        public_base_url=base.rstrip("/") if base else None,
        oidc_discovery_url=_env_str("OIDC_DISCOVERY_URL"),
        oidc_client_id=_env_str("OIDC_CLIENT_ID"),
        oidc_client_secret=_env_str("OIDC_CLIENT_SECRET"),
        oidc_scopes=_env_str("OIDC_SCOPES") or "openid email profile",
        oidc_groups_claim=_env_str("OIDC_GROUPS_CLAIM") or "groups",
        sso_return_url=_env_str("SSO_RETURN_URL"),
    )
