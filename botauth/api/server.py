"""
SSO login redirect and identity provider callback server.

The chat bot hands users a login link pointing here; this server forwards the
browser to the identity provider and, on the way back, stores the resulting
tokens and group claims for the user that requested the login.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import requests
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from botauth.auth.models import LoginSession
from botauth.authz.decision import AuthorizationContext, build_context
from botauth.errors import OidcError

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/api/auth/callback"


def _ctx(request: Request) -> AuthorizationContext:
    ctx = getattr(request.app.state, "ctx", None)
    if ctx is None:
        raise HTTPException(status_code=503, detail="Authorization context is not ready")
    return ctx


def _public_base_url(ctx: AuthorizationContext) -> str:
    base = (ctx.sso.cfg.public_base_url or "").strip().rstrip("/")
    if not base:
        raise HTTPException(status_code=500, detail="AUTH_PUBLIC_BASE_URL is required for SSO")
    return base


def _return_url(template: Optional[str], room: Optional[str], team: Optional[str]) -> Optional[str]:
    if not template:
        return None
    try:
        return template.format(room=quote(room or "", safe=""), team=quote(team or "", safe=""))
    except (KeyError, IndexError, ValueError):
        logger.warning("SSO_RETURN_URL has unsupported placeholders; ignoring it")
        return None


def create_app(
    ctx: Optional[AuthorizationContext] = None,
    *,
    on_login_complete: Optional[Callable[[LoginSession], None]] = None,
) -> FastAPI:
    app = FastAPI(title="botauth SSO callback")
    app.state.ctx = ctx

    @app.on_event("startup")
    async def _startup_build_context() -> None:
        if app.state.ctx is None:
            app.state.ctx = await build_context(on_login_complete=on_login_complete)

    @app.on_event("shutdown")
    async def _shutdown_close_directory() -> None:
        if app.state.ctx is not None:
            await app.state.ctx.directory.close()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming HTTP requests."""
        start_time = time.time()
        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
            return response
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
            raise

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True}

    @app.get("/api/auth/login/{token}")
    async def auth_login(request: Request, token: str):
        """Send the browser to the identity provider for a pending login session."""
        from botauth.auth.oidc import build_authorize_url, pkce_challenge

        ctx = _ctx(request)
        cfg = ctx.sso.cfg
        if not (ctx.sso.enabled and cfg.oidc_enabled):
            raise HTTPException(status_code=403, detail="SSO is not enabled")
        redirect_uri = f"{_public_base_url(ctx)}{CALLBACK_PATH}"
        session = ctx.sso.prepare_redirect(token)
        if session is None:
            raise HTTPException(status_code=401, detail="Unknown or already used login session")

        try:
            url = build_authorize_url(
                cfg,
                redirect_uri=redirect_uri,
                state=token,
                nonce=session.nonce or "",
                code_challenge=pkce_challenge(session.code_verifier or ""),
            )
        except (OidcError, requests.RequestException) as e:
            logger.error("Cannot build authorize URL: %s", str(e))
            raise HTTPException(status_code=502, detail="Identity provider is unavailable")

        resp = RedirectResponse(url=url, status_code=302)
        resp.headers["Cache-Control"] = "no-store"
        return resp

    @app.get(CALLBACK_PATH)
    async def auth_callback(
        request: Request,
        code: Optional[str] = Query(None),
        state: Optional[str] = Query(None),
        error: Optional[str] = Query(None),
    ):
        """Handle the identity provider callback for a login session."""
        from botauth.auth.oidc import exchange_code_for_tokens, profile_from_tokens

        ctx = _ctx(request)
        cfg = ctx.sso.cfg
        if not (ctx.sso.enabled and cfg.oidc_enabled):
            raise HTTPException(status_code=403, detail="SSO is not enabled")
        if error:
            # The session stays pending; the user can follow the login link again.
            logger.info("Identity provider returned error=%s", error)
            raise HTTPException(status_code=401, detail=f"Login was not completed: {error}")
        if not code or not state:
            raise HTTPException(status_code=400, detail="Missing code or state")
        # Never spend an authorization code on a session we cannot complete.
        pending = ctx.sso.peek_session(state)
        if pending is None:
            raise HTTPException(status_code=401, detail="Unauthorized")
        if not pending.nonce or not pending.code_verifier:
            raise HTTPException(status_code=400, detail="Missing OAuth verifier/nonce")

        redirect_uri = f"{_public_base_url(ctx)}{CALLBACK_PATH}"
        try:
            tokens = exchange_code_for_tokens(
                cfg, redirect_uri=redirect_uri, code=code, code_verifier=pending.code_verifier
            )
            profile = profile_from_tokens(cfg, tokens, expected_nonce=pending.nonce)
        except (OidcError, requests.RequestException) as e:
            logger.error("SSO token exchange failed: %s", str(e))
            raise HTTPException(status_code=502, detail="Token exchange failed")
        except Exception:
            logger.exception("Unexpected error during SSO token exchange")
            raise HTTPException(status_code=502, detail="Token exchange failed")

        session = ctx.sso.complete_login(state, profile)
        if session is None:
            # Consumed concurrently by another callback.
            raise HTTPException(status_code=401, detail="Unauthorized")

        target = _return_url(cfg.sso_return_url, session.room, session.team)
        if target:
            resp = RedirectResponse(url=target, status_code=302)
            resp.headers["Cache-Control"] = "no-store"
            return resp
        return JSONResponse(
            content={"ok": True, "identity": session.identity, "room": session.room, "team": session.team},
            headers={"Cache-Control": "no-store"},
        )

    return app


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting SSO callback server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(create_app(), host=host, port=port, log_level=uvicorn_log_level)
