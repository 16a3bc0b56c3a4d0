from __future__ import annotations

from typing import Dict

DEFAULT_LOCALE = "en"

_CATALOG: Dict[str, Dict[str, str]] = {
    "en": {
        "no.access": "I'm sorry, but you don't have access to that command.",
        "login.required": "I'm sorry, but you don't have access to that command. "
        "I've sent you a direct message with a link to log in.",
        "login.private": "Please log in to use that command: {url}",
        "login.success": "You are now logged in. Please repeat your command.",
        "logout.success": "You have been logged out.",
    },
}


def t(key: str, locale: str = DEFAULT_LOCALE, **kwargs: object) -> str:
    """Look up a user-facing message. Unknown locales fall back to English; unknown keys echo the key."""
    messages = _CATALOG.get(locale) or _CATALOG[DEFAULT_LOCALE]
    template = messages.get(key) or _CATALOG[DEFAULT_LOCALE].get(key)
    if template is None:
        return key
    return template.format(**kwargs) if kwargs else template
