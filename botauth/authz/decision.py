"""
Authorization decision for a single chat command.

Sources are consulted in order: static roster, LDAP groups, then SSO. SSO is
the last resort only; a user entitled by roster or LDAP never sees a login
prompt.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Literal, Optional, Tuple

from botauth.auth.config import AuthConfig, DirectoryConfig, load_auth_config, load_directory_config
from botauth.auth.credentials import Brain, CredentialStore, MemoryBrain
from botauth.auth.directory import DirectoryClient
from botauth.auth.models import LoginSession
from botauth.auth.sso import ADMIN_GROUP, SsoHandshake
from botauth.authz.policy import AuthzPolicy, classify, load_authz_policy
from botauth.authz.roster import StaticRoster

logger = logging.getLogger(__name__)

DecisionReason = Literal["disabled", "unclassified", "authorized", "denied", "login_required", "error"]

READER_ROLE = "reader"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: DecisionReason
    login_url: Optional[str] = None


@dataclass
class AuthorizationContext:
    """Everything a decision needs, built once per process and shared by reference."""

    policy: AuthzPolicy
    roster: StaticRoster
    directory: DirectoryClient
    sso: SsoHandshake
    reader_groups: Tuple[str, ...] = ()
    power_groups: Tuple[str, ...] = ()


async def build_context(
    *,
    policy: Optional[AuthzPolicy] = None,
    directory_cfg: Optional[DirectoryConfig] = None,
    auth_cfg: Optional[AuthConfig] = None,
    brain: Optional[Brain] = None,
    directory: Optional[DirectoryClient] = None,
    on_login_complete: Optional[Callable[[LoginSession], None]] = None,
) -> AuthorizationContext:
    """
    Load configuration, bind to LDAP (if configured) and wire up the SSO handshake.

    `on_login_complete` is how the chat host learns that a user finished an SSO
    login; see `botauth.chat.middleware.login_notifier`.
    """
    policy = policy or load_authz_policy()
    directory_cfg = directory_cfg or load_directory_config()
    auth_cfg = auth_cfg or load_auth_config()

    if directory is None:
        directory = DirectoryClient(directory_cfg)
        await directory.connect()

    store = CredentialStore(brain if brain is not None else MemoryBrain())
    sso = SsoHandshake(auth_cfg, store, on_login_complete=on_login_complete)

    logger.info(
        "Authorization context ready: disabled=%s readers=%d powers=%d ldap=%s sso=%s",
        policy.disabled,
        len(policy.reader_users),
        len(policy.power_users),
        directory.state.value,
        sso.enabled,
    )
    return AuthorizationContext(
        policy=policy,
        roster=StaticRoster.from_policy(policy),
        directory=directory,
        sso=sso,
        reader_groups=directory_cfg.reader_groups,
        power_groups=directory_cfg.power_groups,
    )


class Authorizer:
    def __init__(self, ctx: AuthorizationContext) -> None:
        self.ctx = ctx

    async def is_authorized_reader(self, identity: str) -> bool:
        if self.ctx.roster.is_reader(identity):
            return True
        if self.ctx.directory.available:
            return await self.ctx.directory.is_member_of_any_group(identity, self.ctx.reader_groups)
        return False

    async def is_authorized_power(self, identity: str) -> bool:
        if self.ctx.roster.is_power(identity):
            return True
        if self.ctx.directory.available:
            return await self.ctx.directory.is_member_of_any_group(identity, self.ctx.power_groups)
        return False

    def _sso_fallback(self, identity: str, role: str, room: Optional[str], team: Optional[str]) -> Decision:
        if not self.ctx.sso.enabled:
            return Decision(allowed=False, reason="denied")
        result = self.ctx.sso.check_access(identity, role, room=room, team=team)
        if result.authorized:
            return Decision(allowed=True, reason="authorized")
        if result.login_url:
            return Decision(allowed=False, reason="login_required", login_url=result.login_url)
        return Decision(allowed=False, reason="denied")

    async def _decide(self, identity: str, command_id: str, room: Optional[str], team: Optional[str]) -> Decision:
        if self.ctx.policy.disabled:
            logger.info("Authorization is disabled; allowing %s for %s", command_id, identity)
            return Decision(allowed=True, reason="disabled")

        tier = classify(command_id)
        if tier == "none":
            return Decision(allowed=True, reason="unclassified")

        authorized_reader = await self.is_authorized_reader(identity)
        authorized_power = await self.is_authorized_power(identity)

        if tier == "reader" and not (authorized_reader or authorized_power):
            decision = self._sso_fallback(identity, READER_ROLE, room, team)
        elif tier == "power" and not authorized_power:
            decision = self._sso_fallback(identity, ADMIN_GROUP, room, team)
        else:
            decision = Decision(allowed=True, reason="authorized")

        if not decision.allowed:
            logger.info("User %s is not authorized to use command %s (%s)", identity, command_id, decision.reason)
        return decision

    async def decide(
        self,
        identity: Optional[str],
        command_id: Optional[str],
        *,
        room: Optional[str] = None,
        team: Optional[str] = None,
    ) -> Decision:
        """
        Decide whether `identity` may run `command_id`.

        Never raises and never fails open: unexpected errors become a deny.
        """
        try:
            return await self._decide(identity or "", command_id or "", room, team)
        except Exception:
            logger.exception("An error occurred during authorization checks for %s (%s)", identity, command_id)
            return Decision(allowed=False, reason="error")
