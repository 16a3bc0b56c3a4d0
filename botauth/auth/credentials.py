from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, Optional, Protocol

from botauth.auth.models import CredentialRecord

logger = logging.getLogger(__name__)

CREDENTIALS_KEY = "botauth.credentials"


class Brain(Protocol):
    """
    Minimal key-value store interface exposed by the chat host.
    """

    def get(self, key: str) -> Any:
        """Return the stored value, or None."""

    def set(self, key: str, value: Any) -> None:
        """Store a value under key."""


class MemoryBrain:
    """In-process brain. Values are kept by reference, like the host's own brain."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value


class CredentialStore:
    """
    Per-identity credential records kept in a single brain mapping.

    All read-modify-write paths run under one lock, so concurrent updates for the
    same identity are serialized as well.
    """

    def __init__(self, brain: Brain) -> None:
        self._brain = brain
        self._lock = threading.RLock()

    def _mapping(self) -> Dict[str, CredentialRecord]:
        mapping = self._brain.get(CREDENTIALS_KEY)
        if mapping is None:
            mapping = {}
            self._brain.set(CREDENTIALS_KEY, mapping)
        return mapping

    def get(self, email: str) -> Optional[CredentialRecord]:
        with self._lock:
            return self._mapping().get(email)

    def get_or_create(self, email: str) -> CredentialRecord:
        with self._lock:
            mapping = self._mapping()
            record = mapping.get(email)
            if record is None:
                record = CredentialRecord()
                mapping[email] = record
            return record

    def update(
        self,
        email: str,
        *,
        access_token: Optional[str],
        refresh_token: Optional[str],
        groups: Iterable[str],
    ) -> CredentialRecord:
        with self._lock:
            record = self.get_or_create(email)
            record.access_token = access_token
            record.refresh_token = refresh_token
            record.groups = list(groups)
            return record

    def clear(self, email: str) -> None:
        with self._lock:
            record = self.get_or_create(email)
            record.access_token = None
            record.refresh_token = None
            record.groups = []
        logger.info("Cleared SSO credentials for %s", email)
