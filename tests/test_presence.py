"""
Tests for the Presence Tracker

Tests for explicit sessions, the disconnect-driven offline write,
the presence helpers and following an identity provider.
"""

from unittest.mock import AsyncMock

import pytest

from roomsync import (
    Member,
    PresenceBinder,
    PresenceTracker,
    StaticIdentityProvider,
    UserProfile,
    ValidationError,
)
from roomsync.presence import online_member_count, online_uids, split_by_presence


@pytest.fixture
def tracker(store, config):
    return PresenceTracker(store, config)


# ----------------------------------------------------------------------------
# Sessions
# ----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_begin_and_end_session(tracker, store, engine):
    await tracker.begin_session("ann")
    status = engine.get("status/ann")
    assert status["online"] is True
    assert isinstance(status["lastSeen"], int)
    assert store.state.pending_disconnect_paths == ["status/ann"]

    await tracker.end_session("ann")
    status = engine.get("status/ann")
    assert status["online"] is False
    assert store.state.pending_disconnect_paths == []


@pytest.mark.asyncio
async def test_abrupt_disconnect_marks_offline(engine, config):
    conn = engine.connect()
    tracker = PresenceTracker(conn, config)
    await tracker.begin_session("ann")
    online_at = engine.get("status/ann/lastSeen")

    conn.drop()

    status = engine.get("status/ann")
    assert status["online"] is False
    assert status["lastSeen"] > online_at


@pytest.mark.asyncio
async def test_begin_session_rejects_bad_uid(tracker):
    with pytest.raises(ValidationError):
        await tracker.begin_session("")


@pytest.mark.asyncio
async def test_subscribe_presence(tracker, engine, config):
    seen = []
    subscription = await tracker.subscribe_presence(seen.append)
    assert seen == [{}]

    await tracker.begin_session("ann")
    other = engine.connect()
    await PresenceTracker(other, config).begin_session("bo")
    assert online_uids(seen[-1]) == {"ann", "bo"}

    other.drop()
    assert online_uids(seen[-1]) == {"ann"}
    assert seen[-1]["bo"].online is False

    await subscription.cancel()


@pytest.mark.asyncio
async def test_get_presence(tracker):
    assert await tracker.get_presence("ann") is None
    await tracker.begin_session("ann")
    presence = await tracker.get_presence("ann")
    assert presence.online


# ----------------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------------

def test_online_member_count_and_split():
    members = [Member("ann", "Ann"), Member("bo", "Bo"), Member("cy", "Cy")]
    online = {"bo", "cy", "outsider"}

    assert online_member_count(members, online) == 2
    on, off = split_by_presence(members, online)
    assert [m.uid for m in on] == ["bo", "cy"]
    assert [m.uid for m in off] == ["ann"]


# ----------------------------------------------------------------------------
# PresenceBinder
# ----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_binder_follows_sign_in_and_out(tracker, engine):
    provider = StaticIdentityProvider()
    binder = PresenceBinder(tracker, provider).attach()

    provider.sign_in(UserProfile("ann", display_name="Ann"))
    await binder.settle()
    assert engine.get("status/ann/online") is True

    provider.sign_in(UserProfile("bo"))
    await binder.settle()
    assert engine.get("status/ann/online") is False
    assert engine.get("status/bo/online") is True

    provider.sign_out()
    await binder.settle()
    assert engine.get("status/bo/online") is False

    await binder.detach()


@pytest.mark.asyncio
async def test_binder_handles_already_signed_in_user(tracker, engine):
    provider = StaticIdentityProvider(UserProfile("ann"))
    binder = PresenceBinder(tracker, provider).attach()
    await binder.settle()
    assert engine.get("status/ann/online") is True

    await binder.detach()
    assert engine.get("status/ann/online") is False
    # Detached: later auth changes are ignored
    provider.sign_in(UserProfile("bo"))
    assert binder.current_uid is None


@pytest.mark.asyncio
async def test_binder_logs_failed_transitions():
    tracker = AsyncMock()
    tracker.begin_session.side_effect = RuntimeError("store down")
    provider = StaticIdentityProvider()
    binder = PresenceBinder(tracker, provider).attach()

    provider.sign_in(UserProfile("ann"))
    await binder.settle()

    tracker.begin_session.assert_awaited_once_with("ann")
    assert binder.current_uid == "ann"
