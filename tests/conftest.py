"""Shared fixtures for the store and chat core tests."""

import pytest

from livestore import MemoryStore
from roomsync import ChatConfig, UserProfile


class FakeClock:
    """Wall clock in seconds that only moves when told to."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def store(engine):
    return engine.connect("test-conn")


@pytest.fixture
def config():
    # No backoff sleeps and short typing timers keep the tests fast
    return ChatConfig(
        retry_attempts=3,
        retry_base_delay=0.0,
        typing_idle_seconds=0.05,
        typing_refresh_seconds=0.0,
        typing_lease_seconds=10.0,
    )


@pytest.fixture
def ann():
    return UserProfile("ann", display_name="Ann")


@pytest.fixture
def bo():
    return UserProfile("bo", email="bo@example.com")
