from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import FrozenSet, List, Literal, Optional

Tier = Literal["none", "reader", "power"]

READER_COMMANDS: FrozenSet[str] = frozenset(
    {
        "bluemix.app.list",
        "bluemix.app.logs",
        "bluemix.app.status",
        "bluemix.cloudant.listdatabases",
        "bluemix.cloudant.databaseinfo",
        "bluemix.cloudant.listviews",
        "bluemix.cloudant.runview",
        "bluemix.container.list",
        "bluemix.container.logs",
        "bluemix.container.status",
        "bluemix.containergroup.list",
        "bluemix.service.list",
        "bluemix.space.get",
        "bluemix.space.list",
        "bluemix.space.service.list",
        "bluemix.space.set",
        "bluemix.vs.list",
        "bluemix.app.problems",
        "nlc.status",
        "nlc.list",
        "objectstorage.container.list",
        "objectstorage.container.details",
        "openwhisk.action.list",
        "openwhisk.namespace.list",
        "openwhisk.namespace.get",
        "openwhisk.namespace.set",
        "twitter.tweet.list",
    }
)

POWER_COMMANDS: FrozenSet[str] = frozenset(
    {
        "bluemix.app.remove",
        "bluemix.app.restage",
        "bluemix.app.scale",
        "bluemix.app.start",
        "bluemix.app.stop",
        "bluemix.app.restart",
        "bluemix.cloudant.createdatabase",
        "bluemix.cloudant.setpermissions",
        "bluemix.container.remove",
        "bluemix.container.start",
        "bluemix.container.stop",
        "bluemix.containergroup.remove",
        "bluemix.containergroup.scale",
        "bluemix.service.bind",
        "bluemix.service.create",
        "bluemix.service.remove",
        "bluemix.service.unbind",
        "bluemix.vs.destroy",
        "bluemix.vs.reboot",
        "bluemix.vs.start",
        "bluemix.vs.stop",
        "github.deploy",
        "nlc.train",
        "nlc.auto.approve",
        "objectstorage.retrieve.object",
        "openwhisk.action.invoke",
        "twitter.monitoring.enable",
        "twitter.monitoring.disable",
        "twitter.tweet.edit",
    }
)


def is_reader_command(command_id: Optional[str]) -> bool:
    return bool(command_id) and command_id in READER_COMMANDS


def is_power_command(command_id: Optional[str]) -> bool:
    return bool(command_id) and command_id in POWER_COMMANDS


def classify(command_id: Optional[str]) -> Tier:
    """
    Map a command id to the tier required to run it.

    Unclassified ids (including the empty-string sentinel) are always allowed.
    """
    if is_power_command(command_id):
        return "power"
    if is_reader_command(command_id):
        return "reader"
    return "none"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _split_identities(raw: str) -> List[str]:
    # Identities are matched exactly; only the whole value is trimmed.
    return [x for x in (raw or "").strip().split(",") if x]


@dataclass(frozen=True)
class AuthzPolicy:
    # Master switch (audit-logged on every bypassed check)
    disabled: bool = False

    # Static rosters
    power_users: FrozenSet[str] = field(default_factory=frozenset)
    reader_users: FrozenSet[str] = field(default_factory=frozenset)


@lru_cache(maxsize=1)
def load_authz_policy() -> AuthzPolicy:
    """
    Load the static authorization policy from env (ConfigMap/Secret friendly).

    Recommended vars:
    - AUTHZ_POWER_USERS=alice@example.com,bob@example.com
    - AUTHZ_READER_USERS=carol@example.com
    - AUTHZ_DISABLED=0
    """
    return AuthzPolicy(
        disabled=_env_bool("AUTHZ_DISABLED", False),
        power_users=frozenset(_split_identities(os.getenv("AUTHZ_POWER_USERS", ""))),
        reader_users=frozenset(_split_identities(os.getenv("AUTHZ_READER_USERS", ""))),
    )
