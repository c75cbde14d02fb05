"""
Room Directory

Room lifecycle: creation, lookup, joining and leaving, plus the per-user
room index used by the dashboard.

Creation, join and leave each touch several paths (the room, its
membership and the user's index entry). They are committed as one atomic
multi-path update so a failure can never leave a half-created room.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from livestore.tree import SERVER_TIMESTAMP

from .errors import AuthorizationError, NotFoundError
from .models import Member, Role, Room, RoomType
from .service import StoreService, Subscription
from .store_keys import (
    MEMBER_KEY,
    MESSAGES_KEY,
    ROOM_KEY,
    ROOM_MEMBERS_KEY,
    ROOMS_PATH,
    TYPING_KEY,
    USER_ROOM_KEY,
    USER_ROOMS_KEY,
)
from .validation import (
    require,
    validate_identifier,
    validate_room_name,
    validate_room_password,
    validate_room_type,
)

logger = logging.getLogger(__name__)


def _room_type_value(room_type: Union[RoomType, str]) -> str:
    return room_type.value if isinstance(room_type, RoomType) else room_type


def _member_record(member: Member) -> Dict[str, Any]:
    """Membership record stamped with the commit time as ``joinedAt``."""
    record = member.to_record()
    record["joinedAt"] = SERVER_TIMESTAMP
    return record


def sort_rooms_by_activity(rooms: List[Room]) -> List[Room]:
    """Most recently active first."""
    return sorted(rooms, key=lambda room: room.last_message_time, reverse=True)


class RoomDirectory(StoreService):
    """
    Room metadata and membership lifecycle.

    All mutating methods are awaited by callers: navigation depends on
    their outcome.
    """

    async def create_room(
        self,
        name: str,
        room_type: Union[RoomType, str],
        description: str,
        password: Optional[str],
        creator_uid: str,
        creator_name: str,
        creator_avatar: str,
    ) -> str:
        """
        Create a room with its creator as admin.

        Args:
            name: Room name (at least 3 characters)
            room_type: "public" or "private"
            description: Room description
            password: Join password; required (6+ characters) if private
            creator_uid: uid of the creating user
            creator_name: Creator display name
            creator_avatar: Creator avatar

        Returns:
            The new room id

        Raises:
            ValidationError: If a precondition fails (no store call made)
            StoreError: If the store rejects or fails the write
        """
        type_value = _room_type_value(room_type)
        require(validate_room_name(name))
        require(validate_room_type(type_value))
        require(validate_room_password(type_value, password))
        require(validate_identifier(creator_uid, "user id"))

        room_id = await self._call(
            "generate room id", lambda: self.store.push_key(ROOMS_PATH)
        )

        room = Room(
            room_id=room_id,
            name=name,
            room_type=RoomType(type_value),
            description=description or "",
            created_by=creator_uid,
            password=password or "",
        )
        room_record = room.to_record()
        room_record.update(createdAt=SERVER_TIMESTAMP, lastMessageTime=SERVER_TIMESTAMP)
        admin = Member(creator_uid, creator_name, creator_avatar, role=Role.ADMIN)

        changes = {
            ROOM_KEY.format(room_id=room_id): room_record,
            MEMBER_KEY.format(room_id=room_id, uid=creator_uid): _member_record(admin),
            USER_ROOM_KEY.format(uid=creator_uid, room_id=room_id): True,
        }
        await self._call("create room", lambda: self.store.update("", changes))

        logger.info(
            f"Created {type_value} room '{name}' (ID: {room_id}) by user "
            f"{creator_uid}"
        )
        return room_id

    async def get_room_info(self, room_id: str) -> Optional[Room]:
        """
        Read a room.

        Returns:
            The Room, or None if no room has this id

        Raises:
            ValidationError: If the id is not a store-safe key
        """
        require(validate_identifier(room_id, "room id"))
        record = await self._call(
            "read room", lambda: self.store.read(ROOM_KEY.format(room_id=room_id))
        )
        if not isinstance(record, dict):
            return None
        return Room.from_record(room_id, record)

    async def find_room(self, room_id: str) -> Room:
        """Like ``get_room_info`` but raises NotFoundError when absent."""
        room = await self.get_room_info(room_id)
        if room is None:
            raise NotFoundError(f"Room {room_id} not found")
        return room

    async def join_room(self, room_id: str, uid: str, name: str, avatar: str) -> None:
        """
        Record ``uid`` as a member of the room.

        Idempotent: joining again overwrites the membership record (last
        write wins), including its name and avatar.
        """
        require(validate_identifier(room_id, "room id"))
        require(validate_identifier(uid, "user id"))

        changes = {
            MEMBER_KEY.format(room_id=room_id, uid=uid): _member_record(
                Member(uid, name, avatar)
            ),
            USER_ROOM_KEY.format(uid=uid, room_id=room_id): True,
        }
        await self._call("join room", lambda: self.store.update("", changes))
        logger.info(f"User {uid} joined room {room_id}")

    async def join_room_with_password(
        self,
        room_id: str,
        uid: str,
        name: str,
        avatar: str,
        password: Optional[str] = "",
    ) -> Room:
        """
        Look the room up, check its password, then join.

        Returns:
            The joined Room

        Raises:
            NotFoundError: If the room does not exist
            AuthorizationError: If the room is private and the password
                does not match (no membership is written)
        """
        room = await self.find_room(room_id)
        if not room.check_password(password):
            logger.warning(f"User {uid} gave a wrong password for room {room_id}")
            raise AuthorizationError("Incorrect password")
        await self.join_room(room_id, uid, name, avatar)
        return room

    async def leave_room(self, room_id: str, uid: str) -> None:
        """
        Remove ``uid``'s membership and index entry.

        The room itself stays, even if its only admin leaves.
        """
        require(validate_identifier(room_id, "room id"))
        require(validate_identifier(uid, "user id"))

        changes = {
            MEMBER_KEY.format(room_id=room_id, uid=uid): None,
            USER_ROOM_KEY.format(uid=uid, room_id=room_id): None,
        }
        await self._call("leave room", lambda: self.store.update("", changes))
        logger.info(f"User {uid} left room {room_id}")

    async def list_user_rooms(self, uid: str) -> List[Room]:
        """
        Rooms in ``uid``'s index, most recently active first.

        Index entries whose room no longer exists are skipped.
        """
        require(validate_identifier(uid, "user id"))
        index = await self._call(
            "read user rooms", lambda: self.store.read(USER_ROOMS_KEY.format(uid=uid))
        )
        room_ids = [room_id for room_id, flag in (index or {}).items() if flag]
        rooms = await asyncio.gather(
            *(self.get_room_info(room_id) for room_id in room_ids)
        )
        present = [room for room in rooms if room is not None]
        if len(present) < len(room_ids):
            logger.debug(
                f"Skipped {len(room_ids) - len(present)} dangling room "
                f"index entries for user {uid}"
            )
        return sort_rooms_by_activity(present)

    async def subscribe_user_rooms(
        self, uid: str, on_change: Callable[[List[Room]], None]
    ) -> Subscription:
        """
        Live view of ``uid``'s rooms, most recently active first.

        Combines the user's index with the rooms feed; ``on_change`` runs
        whenever either changes, after the first value of each arrived.
        """
        require(validate_identifier(uid, "user id"))
        state: Dict[str, Any] = {}

        def emit():
            if "index" not in state or "rooms" not in state:
                return
            all_rooms = state["rooms"] or {}
            rooms = [
                Room.from_record(room_id, all_rooms[room_id])
                for room_id, flag in (state["index"] or {}).items()
                if flag and isinstance(all_rooms.get(room_id), dict)
            ]
            on_change(sort_rooms_by_activity(rooms))

        def on_index(value):
            state["index"] = value
            emit()

        def on_rooms(value):
            state["rooms"] = value
            emit()

        tokens = [
            await self.store.subscribe(USER_ROOMS_KEY.format(uid=uid), on_index),
            await self.store.subscribe(ROOMS_PATH, on_rooms),
        ]
        return Subscription(self.store, tokens, f"user rooms of {uid}")

    async def reconcile_rooms(self) -> List[str]:
        """
        Remove room records left behind by incomplete writes.

        A room qualifies only when nobody is a member and either it was
        never given a name (a summary written for a room that did not
        exist) or it has no messages and an empty ``lastMessage`` (a
        partially applied creation in older data). A room whose
        members all left after a message was sent is kept with its history.

        Each leftover goes together with its messages, typing records and
        its creator's index entry in one atomic update.

        Returns:
            The removed room ids
        """
        rooms = await self._call("read rooms", lambda: self.store.read(ROOMS_PATH)) or {}
        removed = []
        for room_id, record in rooms.items():
            members = await self._call(
                "read room members",
                lambda room_id=room_id: self.store.read(
                    ROOM_MEMBERS_KEY.format(room_id=room_id)
                ),
            )
            if members:
                continue
            if not isinstance(record, dict):
                record = {}
            if record.get("name"):
                if record.get("lastMessage"):
                    continue
                messages = await self._call(
                    "read room messages",
                    lambda room_id=room_id: self.store.read(
                        MESSAGES_KEY.format(room_id=room_id)
                    ),
                )
                if messages:
                    continue

            changes = {
                ROOM_KEY.format(room_id=room_id): None,
                MESSAGES_KEY.format(room_id=room_id): None,
                TYPING_KEY.format(room_id=room_id): None,
            }
            creator = record.get("createdBy")
            if creator:
                changes[USER_ROOM_KEY.format(uid=creator, room_id=room_id)] = None
            await self._call(
                "remove leftover room", lambda changes=changes: self.store.update("", changes)
            )
            removed.append(room_id)
            logger.info(f"Removed leftover room {room_id}")
        return removed
