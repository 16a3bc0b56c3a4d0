"""
Pytest config.

Pins the repo root on sys.path so `import botauth` works without installing the
package, clears cached env-driven config between tests, and provides an
in-memory stand-in for an ldap3 connection so no test touches the network.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


@pytest.fixture(autouse=True)
def _clear_config_caches() -> None:
    from botauth.auth.config import load_auth_config, load_directory_config
    from botauth.authz.policy import load_authz_policy

    load_authz_policy.cache_clear()
    load_directory_config.cache_clear()
    load_auth_config.cache_clear()
    yield
    load_authz_policy.cache_clear()
    load_directory_config.cache_clear()
    load_auth_config.cache_clear()


class FakeLdapConnection:
    """
    Mimics the parts of `ldap3.Connection` the directory client uses.

    entries: (search_base, search_filter) -> list of DNs returned by that search
    errors:  search_base -> exception to raise, or an int LDAP result code
    """

    def __init__(
        self,
        *,
        bind_ok: bool = True,
        bind_error: Optional[Exception] = None,
        entries: Optional[Dict[Tuple[str, str], List[str]]] = None,
        errors: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.bind_ok = bind_ok
        self.bind_error = bind_error
        self.entries = entries or {}
        self.errors = errors or {}
        self.searches: List[Tuple[str, str]] = []
        self.response: List[Dict[str, Any]] = []
        self.result: Dict[str, Any] = {}
        self.unbound = False

    def bind(self) -> bool:
        if self.bind_error is not None:
            raise self.bind_error
        if self.bind_ok:
            self.result = {"result": 0, "description": "success"}
        else:
            self.result = {"result": 49, "description": "invalidCredentials"}
        return self.bind_ok

    def search(self, search_base: str, search_filter: str, search_scope: Any = None, **_: Any) -> bool:
        self.searches.append((search_base, search_filter))
        err = self.errors.get(search_base)
        if isinstance(err, Exception):
            raise err
        if err is not None:
            self.response = []
            self.result = {"result": err, "description": "noSuchObject"}
            return False
        dns = self.entries.get((search_base, search_filter), [])
        self.response = [{"type": "searchResEntry", "dn": dn} for dn in dns]
        self.result = {"result": 0, "description": "success"}
        return bool(dns)

    def unbind(self) -> bool:
        self.unbound = True
        return True


@pytest.fixture
def directory_cfg():
    from botauth.auth.config import DirectoryConfig

    return DirectoryConfig(
        protocol="ldap",
        server="ldap.example.com",
        port=389,
        bind_user="cn=bot,dc=example,dc=com",
        bind_password="secret",
        org_root="dc=example,dc=com",
        email_field="mail",
        group_membership_field="uniqueMember",
        power_groups=("ou=admins,dc=example,dc=com",),
        reader_groups=("ou=readers,dc=example,dc=com", "ou=viewers,dc=example,dc=com"),
        connect_timeout_seconds=5,
        receive_timeout_seconds=10,
    )


@pytest.fixture
def make_directory(directory_cfg):
    """Build a connected (or failed) DirectoryClient around a FakeLdapConnection."""
    from botauth.auth.directory import DirectoryClient

    async def _make(conn: Optional[FakeLdapConnection] = None, cfg=None):
        conn = conn or FakeLdapConnection()
        client = DirectoryClient(cfg or directory_cfg, connection_factory=lambda _cfg: conn)
        await client.connect()
        return client, conn

    return _make


@pytest.fixture
def fake_ldap():
    return FakeLdapConnection


@pytest.fixture
def sso_cfg():
    from botauth.auth.config import AuthConfig

    return AuthConfig(
        sso_flag=True,
        public_base_url="https://bot.example.com",
        oidc_discovery_url="https://idp.example.com/.well-known/openid-configuration",
        oidc_client_id="bot-client",
        oidc_client_secret="bot-secret",
        oidc_scopes="openid email profile",
        oidc_groups_claim="groups",
        sso_return_url=None,
    )


@pytest.fixture
def no_sso_cfg(sso_cfg):
    from dataclasses import replace

    return replace(sso_cfg, sso_flag=False)
