from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from botauth.authz.policy import AuthzPolicy


@dataclass(frozen=True)
class StaticRoster:
    """Reader/power identities configured at startup. Never mutated at runtime."""

    readers: FrozenSet[str] = field(default_factory=frozenset)
    powers: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_policy(cls, policy: AuthzPolicy) -> "StaticRoster":
        return cls(readers=frozenset(policy.reader_users), powers=frozenset(policy.power_users))

    @classmethod
    def of(cls, *, readers: Iterable[str] = (), powers: Iterable[str] = ()) -> "StaticRoster":
        return cls(readers=frozenset(readers), powers=frozenset(powers))

    def is_reader(self, identity: Optional[str]) -> bool:
        return identity is not None and identity in self.readers

    def is_power(self, identity: Optional[str]) -> bool:
        return identity is not None and identity in self.powers
