from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import jwt  # PyJWT
import requests

from botauth.auth.config import AuthConfig
from botauth.auth.models import ProviderProfile
from botauth.auth.util import b64url
from botauth.errors import OidcError

logger = logging.getLogger(__name__)

_CACHE_TTL_SECONDS = 3600

_discovery_cache: Dict[str, Tuple[float, Optional[Dict[str, Any]]]] = {}
_jwks_cache: Dict[str, Tuple[float, Optional[Dict[str, Any]]]] = {}


def _get_json_cached(cache: Dict[str, Tuple[float, Optional[Dict[str, Any]]]], url: str) -> Dict[str, Any]:
    ts, cached = cache.get(url, (0.0, None))
    now = time.time()
    if cached is not None and now - ts < _CACHE_TTL_SECONDS:
        return cached
    r = requests.get(url, timeout=10)
    r.raise_for_status()
    data = r.json()
    if not isinstance(data, dict):
        raise OidcError(f"Invalid JSON document at {url}")
    cache[url] = (now, data)
    return data


def _get_discovery(discovery_url: str) -> Dict[str, Any]:
    return _get_json_cached(_discovery_cache, discovery_url)


def _get_jwks(jwks_uri: str) -> Dict[str, Any]:
    return _get_json_cached(_jwks_cache, jwks_uri)


def _require_client(cfg: AuthConfig) -> Dict[str, Any]:
    if not cfg.oidc_discovery_url:
        raise OidcError("OIDC discovery URL not configured")
    if not cfg.oidc_client_id:
        raise OidcError("OIDC client ID not configured")
    return _get_discovery(cfg.oidc_discovery_url)


def build_authorize_url(
    cfg: AuthConfig,
    *,
    redirect_uri: str,
    state: str,
    nonce: str,
    code_challenge: str,
) -> str:
    """
    Build the identity provider redirect. `state` carries the login session token,
    which is the only thing correlating the callback with the chat request.
    Uses PKCE (S256) and a nonce bound to that session.
    """
    disc = _require_client(cfg)
    auth_endpoint = str(disc.get("authorization_endpoint") or "")
    if not auth_endpoint:
        raise OidcError("OIDC discovery missing authorization_endpoint")

    params = {
        "client_id": cfg.oidc_client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": cfg.oidc_scopes,
        "state": state,
        "nonce": nonce,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    return f"{auth_endpoint}?{urlencode(params)}"


def exchange_code_for_tokens(
    cfg: AuthConfig,
    *,
    redirect_uri: str,
    code: str,
    code_verifier: str,
) -> Dict[str, Any]:
    disc = _require_client(cfg)
    if not cfg.oidc_client_secret:
        raise OidcError("OIDC client secret not configured")
    token_endpoint = str(disc.get("token_endpoint") or "")
    if not token_endpoint:
        raise OidcError("OIDC discovery missing token_endpoint")

    payload = {
        "client_id": cfg.oidc_client_id,
        "client_secret": cfg.oidc_client_secret,
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "code_verifier": code_verifier,
    }
    r = requests.post(token_endpoint, data=payload, timeout=10)
    if r.status_code >= 400:
        # Avoid leaking sensitive info; include minimal context.
        raise OidcError(f"Token exchange failed (status={r.status_code})")
    data = r.json()
    if not isinstance(data, dict):
        raise OidcError("Invalid token response")
    return data


def validate_id_token(cfg: AuthConfig, *, id_token: str, expected_nonce: str) -> Dict[str, Any]:
    """Verify the ID token signature and nonce against the provider JWKS and return its claims."""
    disc = _require_client(cfg)
    issuer = str(disc.get("issuer") or "")
    jwks_uri = str(disc.get("jwks_uri") or "")
    if not issuer or not jwks_uri:
        raise OidcError("OIDC discovery missing issuer/jwks_uri")

    kid = str(jwt.get_unverified_header(id_token).get("kid") or "")
    if not kid:
        raise OidcError("ID token missing kid")

    keys = _get_jwks(jwks_uri).get("keys")
    if not isinstance(keys, list):
        raise OidcError("Invalid JWKS keys")
    jwk = next((k for k in keys if isinstance(k, dict) and str(k.get("kid") or "") == kid), None)
    if jwk is None:
        raise OidcError("Unknown signing key (kid)")

    key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(jwk))
    claims = jwt.decode(
        id_token,
        key=key,
        algorithms=["RS256"],
        audience=cfg.oidc_client_id,
        issuer=issuer,
        options={"require": ["exp", "iat", "iss", "aud"]},
    )
    if not isinstance(claims, dict):
        raise OidcError("Invalid ID token claims")

    nonce = str(claims.get("nonce") or "")
    if not nonce or nonce != expected_nonce:
        raise OidcError("Nonce mismatch")
    return claims


def pkce_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return b64url(digest)


def _groups_from_claims(claims: Dict[str, Any], claim: str) -> List[str]:
    raw = claims.get(claim)
    if raw is None:
        return []
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, (list, tuple)):
        return [str(g) for g in raw if g is not None]
    return []


def profile_from_tokens(cfg: AuthConfig, tokens: Dict[str, Any], *, expected_nonce: str) -> ProviderProfile:
    access_token = str(tokens.get("access_token") or "").strip()
    if not access_token:
        raise OidcError("Missing access_token in token response")

    groups: List[str] = []
    id_token = str(tokens.get("id_token") or "").strip()
    if id_token:
        try:
            claims = validate_id_token(cfg, id_token=id_token, expected_nonce=expected_nonce)
        except jwt.PyJWTError as e:
            raise OidcError(f"ID token validation failed: {e}") from e
        groups = _groups_from_claims(claims, cfg.oidc_groups_claim)
    else:
        logger.info("Token response has no id_token; no group claims available")

    return ProviderProfile(
        access_token=access_token,
        refresh_token=str(tokens.get("refresh_token") or "").strip() or None,
        groups=groups,
    )
