"""
Chat Errors

Every failure surfaced by the chat core is one of these. None of them is
fatal: the caller can always retry the user action.
"""

from livestore.errors import StoreError


class ChatError(Exception):
    """Base class for errors raised by the chat core."""


class ValidationError(ChatError):
    """A local precondition failed; no store call was issued."""


class NotFoundError(ChatError):
    """The referenced record (usually a room) does not exist."""


class AuthorizationError(ChatError):
    """The caller may not perform the action (e.g. wrong room password)."""


__all__ = [
    "ChatError",
    "ValidationError",
    "NotFoundError",
    "AuthorizationError",
    "StoreError",
]
