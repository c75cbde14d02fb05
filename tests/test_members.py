"""
Tests for the Membership Registry and the Chat Records

Tests for member ordering, live member views and record conversion.
"""

import pytest

from roomsync import ChatMessage, Member, MembershipRegistry, Role, Room, RoomDirectory, RoomType
from roomsync.members import members_from_value, sort_members


@pytest.fixture
def registry(store, config):
    return MembershipRegistry(store, config)


@pytest.fixture
def directory(store, config):
    return RoomDirectory(store, config)


# ----------------------------------------------------------------------------
# Ordering
# ----------------------------------------------------------------------------

def test_sort_members_by_role_then_join_time():
    members = [
        Member("m2", "Member late", role=Role.MEMBER, joined_at=30),
        Member("mod", "Mod", role=Role.MODERATOR, joined_at=50),
        Member("m1", "Member early", role=Role.MEMBER, joined_at=10),
        Member("adm", "Admin", role=Role.ADMIN, joined_at=99),
    ]
    assert [m.uid for m in sort_members(members)] == ["adm", "mod", "m1", "m2"]


def test_members_from_value_handles_empty_and_unknown_roles():
    assert members_from_value(None) == []
    members = members_from_value(
        {"u1": {"name": "U", "avatar": "U", "role": "owner", "joinedAt": 5}}
    )
    assert members[0].role is Role.MEMBER
    assert members[0].joined_at == 5


# ----------------------------------------------------------------------------
# Registry
# ----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_subscribe_members_tracks_joins_and_leaves(registry, directory):
    room_id = await directory.create_room("General", "public", "", None, "ann", "Ann", "A")

    seen = []
    subscription = await registry.subscribe_members(room_id, seen.append)
    assert [m.uid for m in seen[-1]] == ["ann"]

    await directory.join_room(room_id, "bo", "Bo", "B")
    assert [m.uid for m in seen[-1]] == ["ann", "bo"]
    assert seen[-1][0].role is Role.ADMIN

    await directory.leave_room(room_id, "bo")
    assert [m.uid for m in seen[-1]] == ["ann"]

    await subscription.cancel()
    await subscription.cancel()


@pytest.mark.asyncio
async def test_subscribe_members_of_empty_room(registry):
    seen = []
    await registry.subscribe_members("empty", seen.append)
    assert seen == [[]]


@pytest.mark.asyncio
async def test_get_member(registry, directory):
    room_id = await directory.create_room("General", "public", "", None, "ann", "Ann", "A")
    member = await registry.get_member(room_id, "ann")
    assert member.name == "Ann"
    assert member.role is Role.ADMIN
    assert await registry.get_member(room_id, "bo") is None
    assert [m.uid for m in await registry.get_members(room_id)] == ["ann"]


# ----------------------------------------------------------------------------
# Records
# ----------------------------------------------------------------------------

def test_room_record_round_trip():
    room = Room(
        "r1",
        "Night Owls",
        RoomType.PRIVATE,
        description="Late",
        created_by="ann",
        created_at=1,
        password="secret1",
        last_message="hi",
        last_message_time=2,
    )
    assert Room.from_record("r1", room.to_record()) == room


def test_room_with_unknown_type_is_public():
    room = Room.from_record("r1", {"name": "X", "type": "weird"})
    assert room.room_type is RoomType.PUBLIC
    assert room.check_password("anything")


def test_private_room_password_check():
    room = Room("r1", "X", RoomType.PRIVATE, password="secret1")
    assert room.check_password("secret1")
    assert not room.check_password("wrong")
    assert not room.check_password(None)


def test_message_reactions_from_record():
    message = ChatMessage.from_record(
        "m1",
        {
            "senderUid": "ann",
            "senderName": "Ann",
            "senderAvatar": "A",
            "text": "hi",
            "timestamp": 7,
            "reactions": {"🔥": {"bo": True, "cy": False}, "👍": {}},
        },
    )
    assert message.reactions == {"🔥": {"bo"}}
    assert message.reaction_count("🔥") == 1
    assert message.has_reacted("🔥", "bo")
    assert not message.has_reacted("👍", "bo")
    assert message.to_record()["reactions"] == {"🔥": {"bo": True}}


def test_pending_timestamp_sorts_first():
    message = ChatMessage.from_record("m1", {"timestamp": {".sv": "timestamp"}})
    assert message.timestamp == 0
