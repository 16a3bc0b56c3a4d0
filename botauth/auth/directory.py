"""
LDAP group-membership lookups.

One connection per process, bound once at startup. A failed bind is terminal:
every later membership check answers "not a member" instead of raising.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from ldap3 import NONE, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from botauth.auth.config import DirectoryConfig
from botauth.errors import DirectorySearchError

logger = logging.getLogger(__name__)


class DirectoryState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


ConnectionFactory = Callable[[DirectoryConfig], Any]


def ldap3_connection(cfg: DirectoryConfig) -> Connection:
    server = Server(
        cfg.server,
        port=cfg.port,
        use_ssl=cfg.protocol == "ldaps",
        connect_timeout=cfg.connect_timeout_seconds,
        get_info=NONE,
    )
    return Connection(
        server,
        user=cfg.bind_user,
        password=cfg.bind_password,
        receive_timeout=cfg.receive_timeout_seconds,
        raise_exceptions=False,
    )


class DirectoryClient:
    def __init__(self, cfg: DirectoryConfig, *, connection_factory: Optional[ConnectionFactory] = None) -> None:
        self.cfg = cfg
        self.state = DirectoryState.UNINITIALIZED
        self._factory = connection_factory or ldap3_connection
        self._conn: Any = None
        # ldap3 sync connections are not safe for concurrent use.
        self._lock = asyncio.Lock()

    @property
    def available(self) -> bool:
        return self.state == DirectoryState.CONNECTED

    async def connect(self) -> bool:
        """
        Bind to the directory.

        Returns True when the directory is usable or simply not configured, so
        roster-only deployments are not treated as a startup failure.
        """
        if not self.cfg.configured:
            logger.info("LDAP not configured; group membership checks are disabled")
            return True

        logger.debug("LDAP power_groups=%s reader_groups=%s", list(self.cfg.power_groups), list(self.cfg.reader_groups))
        logger.info("Attempting to connect to LDAP at %s", self.cfg.url)
        self.state = DirectoryState.CONNECTING
        try:
            conn = self._factory(self.cfg)
            ok = await asyncio.to_thread(conn.bind)
        except (LDAPException, OSError) as e:
            logger.error("LDAP bind to %s failed: %s", self.cfg.url, str(e))
            self.state = DirectoryState.FAILED
            return False

        if not ok:
            result = getattr(conn, "result", None) or {}
            logger.error(
                "LDAP bind to %s was rejected: %s",
                self.cfg.url,
                result.get("description") if isinstance(result, dict) else result,
            )
            self.state = DirectoryState.FAILED
            return False

        self._conn = conn
        self.state = DirectoryState.CONNECTED
        logger.info("Connected to LDAP at %s", self.cfg.url)
        return True

    async def close(self) -> None:
        if self._conn is None:
            return
        try:
            await asyncio.to_thread(self._conn.unbind)
        except (LDAPException, OSError) as e:
            logger.warning("LDAP unbind failed: %s", str(e))
        self._conn = None

    async def _search(self, base: str, search_filter: str) -> Optional[str]:
        """Run a sub-tree search and return the DN of the first entry, or None."""
        if self._conn is None:
            raise DirectorySearchError("LDAP connection is not established")

        logger.debug("LDAP search base=%s filter=%s", base, search_filter)

        def _run() -> List[Dict[str, Any]]:
            conn = self._conn
            conn.search(base, search_filter, search_scope=SUBTREE)
            result = conn.result or {}
            if result.get("result", 0) != 0:
                raise DirectorySearchError(
                    f"LDAP search failed (base={base}): {result.get('description') or result.get('result')}"
                )
            return [e for e in (conn.response or []) if e.get("type", "searchResEntry") == "searchResEntry"]

        try:
            async with self._lock:
                entries = await asyncio.to_thread(_run)
        except LDAPException as e:
            raise DirectorySearchError(f"LDAP search failed (base={base}): {e}") from e

        if not entries:
            logger.debug("LDAP filter %s was not matched under %s", search_filter, base)
            return None
        # First match wins; any further entries are ignored.
        logger.debug("LDAP filter %s was matched under %s", search_filter, base)
        return str(entries[0].get("dn") or "")

    async def find_distinguished_name(self, email: str) -> Optional[str]:
        search_filter = f"({self.cfg.email_field}={escape_filter_chars(email)})"
        return await self._search(self.cfg.org_root or "", search_filter)

    async def is_member_of_group(self, email: str, group_dn: str) -> bool:
        dn = await self.find_distinguished_name(email)
        if dn is None:
            return False
        search_filter = f"({self.cfg.group_membership_field}={escape_filter_chars(dn)})"
        return (await self._search(group_dn, search_filter)) is not None

    async def is_member_of_any_group(self, email: str, group_dns: Sequence[str]) -> bool:
        """
        Test membership against every group concurrently.

        All branches run to completion; a failing branch is logged and votes False
        without affecting the others.
        """
        if not isinstance(group_dns, (list, tuple)) or not group_dns:
            return False
        if not self.available:
            return False
        if not email:
            logger.debug("Skipping LDAP group test: no identity")
            return False

        logger.debug("Testing if %s is a member of any of %s", email, list(group_dns))
        results = await asyncio.gather(
            *(self.is_member_of_group(email, g) for g in group_dns),
            return_exceptions=True,
        )
        member = False
        for group, res in zip(group_dns, results):
            if isinstance(res, BaseException):
                logger.error("LDAP group membership test failed for group %s: %s", group, str(res))
                continue
            if res:
                member = True
        logger.debug("%s group membership test is %s for %s", email, member, list(group_dns))
        return member
