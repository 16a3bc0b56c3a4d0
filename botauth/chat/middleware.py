"""
Boundary between the chat host and the authorization engine.

The host extracts (identity, command id, room, team) from its own message
objects and calls `check` before dispatching a command. Natural-language
flows that resolve to a command use `forward` instead.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from pydantic import BaseModel, Field

from botauth.auth.models import LoginSession
from botauth.authz.decision import Authorizer, Decision
from botauth.chat.messages import DEFAULT_LOCALE, t

logger = logging.getLogger(__name__)


class CommandRequest(BaseModel):
    identity: str = ""
    command_id: str = ""
    room: Optional[str] = None
    team: Optional[str] = None


class ForwardRequest(BaseModel):
    emit_target: str = ""
    emit_parameters: Dict[str, Any] = Field(default_factory=dict)


class ChatResponse(Protocol):
    async def reply(self, text: str) -> None:
        """Reply publicly in the originating room."""

    async def send_private(self, text: str) -> None:
        """Send a direct message to the requesting user."""


Emit = Callable[[str, ChatResponse, Dict[str, Any]], Awaitable[None]]

# Posts `text` back to the room/team the session was started from.
RoomNotifier = Callable[[LoginSession, str], None]


def login_notifier(notify: RoomNotifier, *, locale: str = DEFAULT_LOCALE) -> Callable[[LoginSession], None]:
    """Adapt a host's room poster into an `on_login_complete` hook for `build_context`."""

    def _on_login_complete(session: LoginSession) -> None:
        if not session.room:
            logger.debug("Login for %s completed without an originating room", session.identity)
        notify(session, t("login.success", locale))

    return _on_login_complete


class AuthMiddleware:
    def __init__(self, authorizer: Authorizer, *, locale: str = DEFAULT_LOCALE) -> None:
        self.authorizer = authorizer
        self.locale = locale

    async def _deny(self, decision: Decision, response: ChatResponse) -> None:
        if decision.login_url:
            await response.reply(t("login.required", self.locale))
            await response.send_private(t("login.private", self.locale, url=decision.login_url))
        else:
            await response.reply(t("no.access", self.locale))

    async def check(self, request: CommandRequest, response: ChatResponse) -> bool:
        """Return True if dispatch should continue; otherwise the user has been told why not."""
        if not request.command_id:
            logger.warning(
                "Authorization was requested for a command without an id; unrecognized commands are allowed"
            )
        decision = await self.authorizer.decide(
            request.identity, request.command_id, room=request.room, team=request.team
        )
        if decision.allowed:
            return True
        await self._deny(decision, response)
        return False

    async def forward(
        self,
        request: CommandRequest,
        response: ChatResponse,
        params: ForwardRequest,
        emit: Emit,
    ) -> bool:
        """Authorize `params.emit_target` and, if allowed, re-dispatch it with the original parameters."""
        target_request = request.model_copy(update={"command_id": params.emit_target})
        if not await self.check(target_request, response):
            return False
        logger.debug("Authorization granted for forwarded command %s", params.emit_target)
        await emit(params.emit_target, response, params.emit_parameters)
        return True

    async def logout(self, request: CommandRequest, response: ChatResponse) -> None:
        """Forget the requesting user's SSO credentials; only ever for `request.identity` itself."""
        if not request.identity:
            logger.warning("Logout requested without an identity; ignoring it")
            return
        self.authorizer.ctx.sso.logout(request.identity)
        await response.reply(t("logout.success", self.locale))
