"""Chat host boundary: command middleware, forwarded commands and user-facing messages."""

from botauth.chat.middleware import AuthMiddleware, CommandRequest, ForwardRequest, login_notifier

__all__ = ["AuthMiddleware", "CommandRequest", "ForwardRequest", "login_notifier"]
