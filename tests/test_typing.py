"""
Tests for the Typing Signal

Tests for typing records, their expiry when a client vanishes, the live
view and the client-side debouncer.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from roomsync import TypingDebouncer, TypingSignal
from roomsync.session import typing_label
from roomsync.typing_signal import typing_from_value


@pytest.fixture
def signal(store, config):
    return TypingSignal(store, config)


# ----------------------------------------------------------------------------
# Test set_typing()
# ----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_set_typing_true_then_false(signal, store, engine):
    await signal.set_typing("r1", "ann", "Ann", True)
    record = engine.get("typing/r1/ann")
    assert record["name"] == "Ann"
    assert isinstance(record["timestamp"], int)
    assert engine.lease_expiry("typing/r1/ann") is not None
    assert store.state.pending_disconnect_paths == ["typing/r1/ann"]

    await signal.set_typing("r1", "ann", "Ann", False)
    assert engine.get("typing") is None
    assert store.state.pending_disconnect_paths == []


@pytest.mark.asyncio
async def test_set_typing_false_when_absent_is_noop(signal, engine):
    await signal.set_typing("r1", "ann", "Ann", False)
    assert engine.get("typing") is None


@pytest.mark.asyncio
async def test_crashed_client_record_removed_on_disconnect(engine, config):
    conn = engine.connect()
    await TypingSignal(conn, config).set_typing("r1", "bo", "Bo", True)
    conn.drop()
    assert engine.get("typing/r1/bo") is None


@pytest.mark.asyncio
async def test_stale_record_expires_by_lease(signal, engine, clock, config):
    await signal.set_typing("r1", "ann", "Ann", True)
    clock.advance(config.typing_lease_seconds + 1)
    assert engine.expire_leases() == ["typing/r1/ann"]
    assert engine.get("typing") is None


# ----------------------------------------------------------------------------
# Test subscribe_typing()
# ----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_subscribe_typing_excludes_self_and_sorts(signal):
    seen = []
    subscription = await signal.subscribe_typing("r1", "ann", seen.append)
    assert seen == [[]]

    await signal.set_typing("r1", "ann", "Ann", True)
    assert seen[-1] == []

    await signal.set_typing("r1", "zed", "Zed", True)
    await signal.set_typing("r1", "bo", "Bo", True)
    assert [user.name for user in seen[-1]] == ["Bo", "Zed"]

    await signal.set_typing("r1", "zed", "Zed", False)
    assert [user.uid for user in seen[-1]] == ["bo"]

    await subscription.cancel()


def test_typing_from_value_ignores_garbage():
    assert typing_from_value(None) == []
    assert typing_from_value({"u1": "junk"}) == []


def test_typing_label():
    from roomsync import TypingUser

    assert typing_label([]) == ""
    assert typing_label([TypingUser("a", "Ann")]) == "Ann is typing…"
    assert (
        typing_label([TypingUser("a", "Ann"), TypingUser("b", "Bo")])
        == "Ann and Bo are typing…"
    )
    assert (
        typing_label([TypingUser(uid, uid) for uid in ("a", "b", "c")])
        == "3 people are typing…"
    )


# ----------------------------------------------------------------------------
# Test TypingDebouncer
# ----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_debouncer_clears_after_idle(signal, engine):
    debouncer = TypingDebouncer(signal, "r1", "ann", "Ann", idle_seconds=0.05)
    debouncer.keystroke()
    await debouncer.settle()
    assert engine.get("typing/r1/ann") is not None

    await asyncio.sleep(0.15)
    await debouncer.settle()
    assert engine.get("typing/r1/ann") is None
    assert debouncer.typing is False


@pytest.mark.asyncio
async def test_debouncer_keystrokes_rearm_idle_timer(signal, engine):
    debouncer = TypingDebouncer(signal, "r1", "ann", "Ann", idle_seconds=0.3)
    for _ in range(4):
        debouncer.keystroke()
        await asyncio.sleep(0.05)
    await debouncer.settle()
    # 0.2s of typing, but never 0.3s idle
    assert engine.get("typing/r1/ann") is not None

    await debouncer.flush()
    assert engine.get("typing/r1/ann") is None


@pytest.mark.asyncio
async def test_debouncer_throttles_refresh_writes():
    signal = AsyncMock()
    now = [0.0]
    debouncer = TypingDebouncer(
        signal,
        "r1",
        "ann",
        "Ann",
        idle_seconds=10,
        refresh_seconds=1.0,
        clock=lambda: now[0],
    )

    debouncer.keystroke()
    now[0] = 0.5
    debouncer.keystroke()
    now[0] = 1.2
    debouncer.keystroke()
    await debouncer.flush()

    calls = [call.args for call in signal.set_typing.await_args_list]
    assert calls == [
        ("r1", "ann", "Ann", True),
        ("r1", "ann", "Ann", True),
        ("r1", "ann", "Ann", False),
    ]


@pytest.mark.asyncio
async def test_debouncer_flush_without_typing_writes_nothing():
    signal = AsyncMock()
    debouncer = TypingDebouncer(signal, "r1", "ann", "Ann")
    await debouncer.flush()
    signal.set_typing.assert_not_awaited()


@pytest.mark.asyncio
async def test_debouncer_logs_write_failures():
    signal = AsyncMock()
    signal.set_typing.side_effect = RuntimeError("store down")
    debouncer = TypingDebouncer(signal, "r1", "ann", "Ann", idle_seconds=10)
    debouncer.keystroke()
    await debouncer.flush()
    assert signal.set_typing.await_count == 2
