from __future__ import annotations

import base64
import os
from urllib.parse import quote


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def random_token(nbytes: int = 32) -> str:
    return b64url(os.urandom(nbytes))


def join_url(base: str, *parts: str) -> str:
    """Append path segments to a base URL, quoting each segment."""
    out = (base or "").rstrip("/")
    for p in parts:
        out += "/" + quote(str(p).strip("/"), safe="")
    return out
