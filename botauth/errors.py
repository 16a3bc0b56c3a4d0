from __future__ import annotations


class BotAuthError(Exception):
    """Base class for authorization-layer failures."""


class DirectorySearchError(BotAuthError):
    """An LDAP search failed at the protocol or transport level."""


class OidcError(BotAuthError):
    """The identity provider returned something we cannot use."""
