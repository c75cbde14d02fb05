"""
Tests for Retry, Configuration and Identity

Tests for the bounded retry policy, environment configuration, the
validation helpers and user display profiles.
"""

from unittest.mock import AsyncMock

import pytest

from livestore import ConnectionClosedError, StoreError
from roomsync import ChatConfig, StaticIdentityProvider, UserProfile
from roomsync.retry import retry_async
from roomsync.validation import (
    validate_identifier,
    validate_message_content,
    validate_room_name,
    validate_room_password,
    validate_room_type,
)


# ----------------------------------------------------------------------------
# retry_async()
# ----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_retry_succeeds_after_transient_failures():
    operation = AsyncMock(side_effect=[ConnectionClosedError(), ConnectionClosedError(), 42])
    sleep = AsyncMock()

    result = await retry_async(operation, attempts=3, base_delay=0.1, sleep=sleep)

    assert result == 42
    assert operation.await_count == 3
    assert [call.args[0] for call in sleep.await_args_list] == [0.1, 0.2]


@pytest.mark.asyncio
async def test_retry_gives_up_after_attempts():
    operation = AsyncMock(side_effect=ConnectionClosedError())
    sleep = AsyncMock()

    with pytest.raises(ConnectionClosedError):
        await retry_async(operation, attempts=2, base_delay=0.1, sleep=sleep)
    assert operation.await_count == 2


@pytest.mark.asyncio
async def test_retry_does_not_retry_rejections():
    operation = AsyncMock(side_effect=StoreError("nope", code="invalid_path"))
    sleep = AsyncMock()

    with pytest.raises(StoreError):
        await retry_async(operation, attempts=5, sleep=sleep)
    assert operation.await_count == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_retry_does_not_catch_other_errors():
    operation = AsyncMock(side_effect=ValueError("bug"))
    with pytest.raises(ValueError):
        await retry_async(operation, attempts=5, sleep=AsyncMock())
    assert operation.await_count == 1


# ----------------------------------------------------------------------------
# ChatConfig
# ----------------------------------------------------------------------------

def test_config_defaults():
    config = ChatConfig()
    assert config.store_url == "ws://localhost:8765"
    assert config.typing_idle_seconds == 2.0
    assert config.retry_attempts == 3


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("STORE_URL", "ws://store:9000")
    monkeypatch.setenv("TYPING_IDLE_SECONDS", "3.5")
    monkeypatch.setenv("STORE_RETRY_ATTEMPTS", "5")
    monkeypatch.delenv("REQUEST_TIMEOUT", raising=False)

    config = ChatConfig.from_env()

    assert config.store_url == "ws://store:9000"
    assert config.typing_idle_seconds == 3.5
    assert config.retry_attempts == 5
    assert config.request_timeout == 10.0


# ----------------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------------

def test_validation_helpers():
    assert validate_room_name("abc") == (True, None)
    assert validate_room_name(" ab ")[0] is False
    assert validate_room_type("public") == (True, None)
    assert validate_room_type("hidden")[0] is False
    assert validate_room_password("public", None) == (True, None)
    assert validate_room_password("private", "secret1") == (True, None)
    assert validate_room_password("private", "short")[0] is False
    assert validate_message_content("hi") == (True, None)
    assert validate_message_content("")[0] is False
    assert validate_identifier("room-1", "room id") == (True, None)
    assert validate_identifier("a/b", "room id")[0] is False
    assert validate_identifier(None, "room id")[0] is False


# ----------------------------------------------------------------------------
# Identity
# ----------------------------------------------------------------------------

@pytest.mark.parametrize(
    "profile, name, avatar",
    [
        (UserProfile("u1", display_name="ann lee"), "ann lee", "A"),
        (UserProfile("u2", email="bo@example.com"), "bo", "B"),
        (UserProfile("u3", display_name="", email="@example.com"), "User", "U"),
        (UserProfile("u4"), "User", "U"),
    ],
)
def test_profile_name_and_avatar(profile, name, avatar):
    assert profile.name == name
    assert profile.avatar == avatar


def test_static_identity_provider_notifies():
    provider = StaticIdentityProvider()
    seen = []
    remove = provider.on_auth_change(seen.append)

    user = UserProfile("u1")
    provider.sign_in(user)
    assert provider.current_user() == user
    provider.sign_out()
    assert provider.current_user() is None

    remove()
    provider.sign_in(user)
    assert seen == [user, None]
