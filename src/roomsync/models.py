"""
Chat Records

Typed views of the records kept in the store. Each model converts from the
raw store record (``from_record``) and back (``to_record``) using the
store's camelCase field names.
"""

import hmac
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class RoomType(Enum):
    """Public rooms are open to anyone with the id; private need a password."""

    PUBLIC = "public"
    PRIVATE = "private"


class Role(Enum):
    """Membership role. Data only: nothing in the core enforces it."""

    ADMIN = "admin"
    MODERATOR = "moderator"
    MEMBER = "member"

    @property
    def rank(self) -> int:
        """Display precedence, lower first: admin > moderator > member."""
        return _ROLE_RANKS[self]

    @classmethod
    def parse(cls, value: Any) -> "Role":
        try:
            return cls(value)
        except ValueError:
            logger.warning(f"Unknown role {value!r}, treating as member")
            return cls.MEMBER


_ROLE_RANKS = {Role.ADMIN: 0, Role.MODERATOR: 1, Role.MEMBER: 2}


def _as_int(value: Any) -> int:
    # Pending server timestamps and missing fields sort first
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


@dataclass
class Room:
    """
    A chat room.

    Attributes:
        room_id: Store-generated unique id
        name: Display name
        room_type: Public or private
        description: Free-form description
        created_by: uid of the creator
        created_at: Server timestamp (ms) of creation
        password: Join password; empty unless private
        last_message: Text of the latest message ("" if none)
        last_message_time: Server timestamp (ms) of the latest message
    """

    room_id: str
    name: str
    room_type: RoomType
    description: str = ""
    created_by: str = ""
    created_at: int = 0
    password: str = ""
    last_message: str = ""
    last_message_time: int = 0

    @property
    def is_private(self) -> bool:
        return self.room_type is RoomType.PRIVATE

    def check_password(self, password: Optional[str]) -> bool:
        """True if ``password`` opens this room (always for public rooms)."""
        if not self.is_private:
            return True
        return hmac.compare_digest(
            (password or "").encode("utf-8"), self.password.encode("utf-8")
        )

    @classmethod
    def from_record(cls, room_id: str, record: Dict[str, Any]) -> "Room":
        try:
            room_type = RoomType(record.get("type", "public"))
        except ValueError:
            logger.warning(f"Room {room_id} has unknown type, treating as public")
            room_type = RoomType.PUBLIC
        return cls(
            room_id=room_id,
            name=record.get("name", ""),
            room_type=room_type,
            description=record.get("description", ""),
            created_by=record.get("createdBy", ""),
            created_at=_as_int(record.get("createdAt")),
            password=record.get("password", ""),
            last_message=record.get("lastMessage", ""),
            last_message_time=_as_int(record.get("lastMessageTime")),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.room_type.value,
            "description": self.description,
            "password": self.password if self.is_private else "",
            "createdBy": self.created_by,
            "createdAt": self.created_at,
            "lastMessage": self.last_message,
            "lastMessageTime": self.last_message_time,
        }


@dataclass
class Member:
    """
    A user's membership in a room.

    Attributes:
        uid: The member's user id
        name: Display name at join time
        avatar: Avatar initial or URL
        role: Membership role
        joined_at: Server timestamp (ms) of the join
    """

    uid: str
    name: str
    avatar: str = ""
    role: Role = Role.MEMBER
    joined_at: int = 0

    @property
    def sort_key(self) -> Tuple[int, int, str]:
        return (self.role.rank, self.joined_at, self.uid)

    @classmethod
    def from_record(cls, uid: str, record: Dict[str, Any]) -> "Member":
        return cls(
            uid=uid,
            name=record.get("name", ""),
            avatar=record.get("avatar", ""),
            role=Role.parse(record.get("role", "member")),
            joined_at=_as_int(record.get("joinedAt")),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "avatar": self.avatar,
            "role": self.role.value,
            "joinedAt": self.joined_at,
        }


@dataclass
class ChatMessage:
    """
    A message in a room's stream.

    Attributes:
        message_id: Store-generated key (arrival ordered)
        sender_uid: uid of the sender
        sender_name: Sender display name
        sender_avatar: Sender avatar
        text: Message body
        timestamp: Server timestamp (ms), the rendering order
        reactions: emoji -> set of uids who reacted with it
    """

    message_id: str
    sender_uid: str
    sender_name: str
    sender_avatar: str
    text: str
    timestamp: int = 0
    reactions: Dict[str, Set[str]] = field(default_factory=dict)

    @property
    def sort_key(self) -> Tuple[int, str]:
        return (self.timestamp, self.message_id)

    def reaction_count(self, emoji: str) -> int:
        return len(self.reactions.get(emoji, ()))

    def has_reacted(self, emoji: str, uid: str) -> bool:
        return uid in self.reactions.get(emoji, ())

    @classmethod
    def from_record(cls, message_id: str, record: Dict[str, Any]) -> "ChatMessage":
        reactions = {}
        for emoji, uids in (record.get("reactions") or {}).items():
            if isinstance(uids, dict):
                present = {uid for uid, flag in uids.items() if flag}
                if present:
                    reactions[emoji] = present
        return cls(
            message_id=message_id,
            sender_uid=record.get("senderUid", ""),
            sender_name=record.get("senderName", ""),
            sender_avatar=record.get("senderAvatar", ""),
            text=record.get("text", ""),
            timestamp=_as_int(record.get("timestamp")),
            reactions=reactions,
        )

    def to_record(self) -> Dict[str, Any]:
        record = {
            "senderUid": self.sender_uid,
            "senderName": self.sender_name,
            "senderAvatar": self.sender_avatar,
            "text": self.text,
            "timestamp": self.timestamp,
        }
        if self.reactions:
            record["reactions"] = {
                emoji: {uid: True for uid in sorted(uids)}
                for emoji, uids in self.reactions.items()
                if uids
            }
        return record


@dataclass
class Presence:
    """Online status of a user."""

    uid: str
    online: bool = False
    last_seen: int = 0

    @classmethod
    def from_record(cls, uid: str, record: Dict[str, Any]) -> "Presence":
        return cls(
            uid=uid,
            online=bool(record.get("online", False)),
            last_seen=_as_int(record.get("lastSeen")),
        )


@dataclass
class TypingUser:
    """Someone currently composing a message in a room."""

    uid: str
    name: str
    timestamp: int = 0

    @classmethod
    def from_record(cls, uid: str, record: Dict[str, Any]) -> "TypingUser":
        return cls(
            uid=uid,
            name=record.get("name", ""),
            timestamp=_as_int(record.get("timestamp")),
        )
