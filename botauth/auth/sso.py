"""
SSO fallback for users that neither the static roster nor LDAP entitle.

Per identity: anonymous -> session-pending -> authenticated. A login session
is a one-time token linking the identity provider callback back to the chat
room that asked for the login.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Callable, Dict, Optional

from botauth.auth.config import AuthConfig
from botauth.auth.credentials import CredentialStore
from botauth.auth.models import AccessResult, LoginSession, ProviderProfile
from botauth.auth.util import join_url, random_token

logger = logging.getLogger(__name__)

ADMIN_GROUP = "admin"

LOGIN_PATH_SEGMENTS = ("api", "auth", "login")


class SsoHandshake:
    def __init__(
        self,
        cfg: AuthConfig,
        store: CredentialStore,
        *,
        on_login_complete: Optional[Callable[[LoginSession], None]] = None,
    ) -> None:
        self.cfg = cfg
        self.store = store
        self.on_login_complete = on_login_complete
        # Sessions never expire; an unconsumed one is simply abandoned.
        self._sessions: Dict[str, LoginSession] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.cfg.sso_enabled

    def login_url(self, token: str) -> str:
        return join_url(self.cfg.public_base_url or "", *LOGIN_PATH_SEGMENTS, token)

    def begin_login(self, identity: str, room: Optional[str] = None, team: Optional[str] = None) -> str:
        token = random_token(32)
        with self._lock:
            self._sessions[token] = LoginSession(identity=identity, room=room, team=team)
        logger.info("Started SSO login session for %s", identity)
        return self.login_url(token)

    def has_session(self, token: str) -> bool:
        with self._lock:
            return token in self._sessions

    def peek_session(self, token: str) -> Optional[LoginSession]:
        with self._lock:
            return self._sessions.get(token)

    def prepare_redirect(self, token: str) -> Optional[LoginSession]:
        """
        Attach a fresh OIDC nonce and PKCE verifier to a pending session.

        Each visit to the login link gets new values; only the most recent
        redirect can complete. Returns None when the token is unknown.
        """
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            session = replace(session, nonce=random_token(32), code_verifier=random_token(32))
            self._sessions[token] = session
        return session

    def complete_login(self, token: str, profile: ProviderProfile) -> Optional[LoginSession]:
        """
        Consume a login session with the provider's profile.

        Returns the consumed session, or None when the token is unknown (nothing changes).
        """
        with self._lock:
            session = self._sessions.pop(token, None)
        if session is None:
            logger.warning("SSO callback with unknown login session")
            return None

        self.store.update(
            session.identity,
            access_token=profile.access_token,
            refresh_token=profile.refresh_token,
            groups=profile.groups,
        )
        logger.info("SSO login completed for %s (groups=%s)", session.identity, profile.groups)

        if self.on_login_complete is not None:
            try:
                self.on_login_complete(session)
            except Exception:
                logger.exception("Login completion hook failed for %s", session.identity)
        return session

    def logout(self, identity: str) -> None:
        self.store.clear(identity)

    def check_access(
        self,
        identity: str,
        required_role: str,
        *,
        room: Optional[str] = None,
        team: Optional[str] = None,
    ) -> AccessResult:
        record = self.store.get_or_create(identity)
        if not record.access_token:
            return AccessResult(authorized=False, login_url=self.begin_login(identity, room, team))

        groups = set(record.groups or [])
        if ADMIN_GROUP in groups or required_role in groups:
            return AccessResult(authorized=True)
        # Known but not entitled: logging in again would not help.
        logger.info("SSO user %s lacks role %s (groups=%s)", identity, required_role, sorted(groups))
        return AccessResult(authorized=False)
