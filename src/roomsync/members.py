"""
Membership Registry

Live and one-shot views of a room's members. Roles are data only here;
any check based on them belongs to the calling layer.
"""

import logging
from typing import Any, Callable, List, Optional

from .models import Member
from .service import StoreService, Subscription
from .store_keys import MEMBER_KEY, ROOM_MEMBERS_KEY
from .validation import require, validate_identifier

logger = logging.getLogger(__name__)


def members_from_value(value: Any) -> List[Member]:
    """Convert the raw ``roomMembers/{room}`` value to sorted members."""
    if not isinstance(value, dict):
        return []
    members = [
        Member.from_record(uid, record)
        for uid, record in value.items()
        if isinstance(record, dict)
    ]
    return sort_members(members)


def sort_members(members: List[Member]) -> List[Member]:
    """Admins first, then moderators, then members; oldest joins first."""
    return sorted(members, key=lambda member: member.sort_key)


class MembershipRegistry(StoreService):
    """Per-room member sets."""

    async def subscribe_members(
        self, room_id: str, on_change: Callable[[List[Member]], None]
    ) -> Subscription:
        """
        Observe a room's members.

        ``on_change`` receives the full sorted member list immediately
        and again after every add, remove or change.
        """
        require(validate_identifier(room_id, "room id"))

        def deliver(value):
            on_change(members_from_value(value))

        token = await self.store.subscribe(
            ROOM_MEMBERS_KEY.format(room_id=room_id), deliver
        )
        return Subscription(self.store, [token], f"members of {room_id}")

    async def get_members(self, room_id: str) -> List[Member]:
        require(validate_identifier(room_id, "room id"))
        value = await self._call(
            "read members",
            lambda: self.store.read(ROOM_MEMBERS_KEY.format(room_id=room_id)),
        )
        return members_from_value(value)

    async def get_member(self, room_id: str, uid: str) -> Optional[Member]:
        require(validate_identifier(room_id, "room id"))
        require(validate_identifier(uid, "user id"))
        record = await self._call(
            "read member",
            lambda: self.store.read(MEMBER_KEY.format(room_id=room_id, uid=uid)),
        )
        if not isinstance(record, dict):
            return None
        return Member.from_record(uid, record)
