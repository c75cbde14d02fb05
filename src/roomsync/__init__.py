"""
Room Sync Package

This package provides the room sync and live-state core of a multi-room
chat: rooms and their membership, per-room message streams with
reactions, global presence, typing indicators, and the session controller
composing them into one live room view. All state lives in an injected
realtime store.
"""

from .config import ChatConfig
from .errors import (
    AuthorizationError,
    ChatError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from .identity import IdentityProvider, StaticIdentityProvider, UserProfile
from .members import MembershipRegistry
from .message_buffer import MessageBuffer
from .messages import REACTION_EMOJIS, MessageStream
from .models import ChatMessage, Member, Presence, Role, Room, RoomType, TypingUser
from .presence import PresenceBinder, PresenceTracker
from .rooms import RoomDirectory
from .service import Subscription
from .session import RoomSession, RoomView
from .typing_signal import TypingDebouncer, TypingSignal

__all__ = [
    "ChatConfig",
    "AuthorizationError",
    "ChatError",
    "NotFoundError",
    "StoreError",
    "ValidationError",
    "IdentityProvider",
    "StaticIdentityProvider",
    "UserProfile",
    "MembershipRegistry",
    "MessageBuffer",
    "REACTION_EMOJIS",
    "MessageStream",
    "ChatMessage",
    "Member",
    "Presence",
    "Role",
    "Room",
    "RoomType",
    "TypingUser",
    "PresenceBinder",
    "PresenceTracker",
    "RoomDirectory",
    "Subscription",
    "RoomSession",
    "RoomView",
    "TypingDebouncer",
    "TypingSignal",
]
