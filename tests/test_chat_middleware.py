from __future__ import annotations

from typing import List

import pytest


class _Response:
    def __init__(self) -> None:
        self.replies: List[str] = []
        self.private: List[str] = []

    async def reply(self, text: str) -> None:
        self.replies.append(text)

    async def send_private(self, text: str) -> None:
        self.private.append(text)


def _middleware(auth_cfg, *, readers=(), powers=()):
    from botauth.auth.config import DirectoryConfig
    from botauth.auth.credentials import CredentialStore, MemoryBrain
    from botauth.auth.directory import DirectoryClient
    from botauth.auth.sso import SsoHandshake
    from botauth.authz.decision import AuthorizationContext, Authorizer
    from botauth.authz.policy import AuthzPolicy
    from botauth.authz.roster import StaticRoster
    from botauth.chat.middleware import AuthMiddleware

    directory = DirectoryClient(
        DirectoryConfig(
            protocol="ldap",
            server=None,
            port=None,
            bind_user=None,
            bind_password=None,
            org_root=None,
            email_field="mail",
            group_membership_field="uniqueMember",
            power_groups=(),
            reader_groups=(),
            connect_timeout_seconds=5,
            receive_timeout_seconds=10,
        )
    )
    policy = AuthzPolicy(reader_users=frozenset(readers), power_users=frozenset(powers))
    ctx = AuthorizationContext(
        policy=policy,
        roster=StaticRoster.from_policy(policy),
        directory=directory,
        sso=SsoHandshake(auth_cfg, CredentialStore(MemoryBrain())),
    )
    return AuthMiddleware(Authorizer(ctx))


@pytest.mark.asyncio
async def test_check_allows_and_stays_quiet(no_sso_cfg) -> None:
    from botauth.chat.middleware import CommandRequest

    mw = _middleware(no_sso_cfg, readers=["a@x.com"])
    res = _Response()
    assert await mw.check(CommandRequest(identity="a@x.com", command_id="bluemix.app.list"), res) is True
    assert res.replies == []
    assert res.private == []


@pytest.mark.asyncio
async def test_check_denial_replies_no_access(no_sso_cfg) -> None:
    from botauth.chat.messages import t
    from botauth.chat.middleware import CommandRequest

    mw = _middleware(no_sso_cfg, readers=["b@x.com"])
    res = _Response()
    assert await mw.check(CommandRequest(identity="b@x.com", command_id="bluemix.app.remove"), res) is False
    assert res.replies == [t("no.access")]
    assert res.private == []


@pytest.mark.asyncio
async def test_check_denial_with_login_sends_private_link(sso_cfg) -> None:
    from botauth.chat.messages import t
    from botauth.chat.middleware import CommandRequest

    mw = _middleware(sso_cfg)
    res = _Response()
    req = CommandRequest(identity="d@x.com", command_id="bluemix.app.remove", room="ops", team="T1")
    assert await mw.check(req, res) is False
    assert res.replies == [t("login.required")]
    assert len(res.private) == 1
    assert "https://bot.example.com/api/auth/login/" in res.private[0]


@pytest.mark.asyncio
async def test_check_without_command_id_is_allowed(no_sso_cfg) -> None:
    from botauth.chat.middleware import CommandRequest

    mw = _middleware(no_sso_cfg)
    assert await mw.check(CommandRequest(identity="x@x.com"), _Response()) is True


@pytest.mark.asyncio
async def test_forward_emits_when_authorized(no_sso_cfg) -> None:
    from botauth.chat.middleware import CommandRequest, ForwardRequest

    mw = _middleware(no_sso_cfg, readers=["myReaderUser@x.com"])
    emitted = []

    async def emit(target, response, params):
        emitted.append((target, params))

    res = _Response()
    ok = await mw.forward(
        CommandRequest(identity="myReaderUser@x.com"),
        res,
        ForwardRequest(emit_target="bluemix.app.list", emit_parameters={"app": "web"}),
        emit,
    )
    assert ok is True
    assert emitted == [("bluemix.app.list", {"app": "web"})]


@pytest.mark.asyncio
async def test_forward_denied_does_not_emit(no_sso_cfg) -> None:
    from botauth.chat.messages import t
    from botauth.chat.middleware import CommandRequest, ForwardRequest

    mw = _middleware(no_sso_cfg, readers=["myReaderUser@x.com"])
    emitted = []

    async def emit(target, response, params):
        emitted.append(target)

    res = _Response()
    ok = await mw.forward(
        CommandRequest(identity="myReaderUser@x.com"), res, ForwardRequest(emit_target="bluemix.app.start"), emit
    )
    assert ok is False
    assert emitted == []
    assert res.replies == ["I'm sorry, but you don't have access to that command."]
    assert res.replies == [t("no.access")]


@pytest.mark.asyncio
async def test_forward_power_user(no_sso_cfg) -> None:
    from botauth.chat.middleware import CommandRequest, ForwardRequest

    mw = _middleware(no_sso_cfg, powers=["myPowerUser@x.com"])
    emitted = []

    async def emit(target, response, params):
        emitted.append(target)

    await mw.forward(
        CommandRequest(identity="myPowerUser@x.com"), _Response(), ForwardRequest(emit_target="bluemix.app.start"), emit
    )
    assert emitted == ["bluemix.app.start"]


def test_messages_fallbacks() -> None:
    from botauth.chat.messages import t

    assert t("no.access", "fr") == t("no.access")
    assert t("missing.key") == "missing.key"
    assert t("login.private", url="https://x/y").endswith("https://x/y")


@pytest.mark.asyncio
async def test_logout_clears_only_the_requesting_user(sso_cfg) -> None:
    from botauth.chat.messages import t
    from botauth.chat.middleware import CommandRequest

    mw = _middleware(sso_cfg)
    store = mw.authorizer.ctx.sso.store
    store.update("a@x.com", access_token="at", refresh_token="rt", groups=["admin"])
    store.update("b@x.com", access_token="bt", refresh_token=None, groups=["reader"])

    res = _Response()
    await mw.logout(CommandRequest(identity="a@x.com", room="ops"), res)

    assert res.replies == [t("logout.success")]
    assert store.get("a@x.com").access_token is None
    assert store.get("a@x.com").groups == []
    assert store.get("b@x.com").access_token == "bt"


@pytest.mark.asyncio
async def test_logout_without_identity_does_nothing(sso_cfg) -> None:
    from botauth.chat.middleware import CommandRequest

    mw = _middleware(sso_cfg)
    res = _Response()
    await mw.logout(CommandRequest(), res)
    assert res.replies == []


@pytest.mark.asyncio
async def test_completed_login_is_posted_to_originating_room(sso_cfg) -> None:
    from urllib.parse import urlparse

    from botauth.auth.config import DirectoryConfig
    from botauth.auth.models import ProviderProfile
    from botauth.authz.decision import build_context
    from botauth.authz.policy import AuthzPolicy
    from botauth.chat.messages import t
    from botauth.chat.middleware import login_notifier

    posted = []
    ctx = await build_context(
        policy=AuthzPolicy(),
        directory_cfg=DirectoryConfig(
            protocol="ldap",
            server=None,
            port=None,
            bind_user=None,
            bind_password=None,
            org_root=None,
            email_field="mail",
            group_membership_field="uniqueMember",
            power_groups=(),
            reader_groups=(),
            connect_timeout_seconds=5,
            receive_timeout_seconds=10,
        ),
        auth_cfg=sso_cfg,
        on_login_complete=login_notifier(lambda session, text: posted.append((session.room, session.team, text))),
    )

    url = ctx.sso.check_access("d@x.com", "admin", room="ops", team="T1").login_url
    token = urlparse(url).path.rsplit("/", 1)[-1]
    ctx.sso.complete_login(token, ProviderProfile(access_token="at", groups=["admin"]))

    assert posted == [("ops", "T1", t("login.success"))]
