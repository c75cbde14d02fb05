"""
Typing Signal

Ephemeral "is typing" records under ``typing/{room}/{uid}``.

Expiry:
    A typing record is written with a store lease and an on-disconnect
    remove. The client normally clears it itself (TypingDebouncer), but a
    crashed client's record still disappears once its connection drops or
    the lease lapses.
"""

import asyncio
import logging
import time
from typing import Any, Callable, List, Optional

from livestore.tree import SERVER_TIMESTAMP

from .config import TYPING_IDLE_SECONDS, TYPING_REFRESH_SECONDS
from .models import TypingUser
from .service import StoreService, Subscription
from .store_keys import TYPING_KEY, TYPING_USER_KEY
from .validation import require, validate_identifier

logger = logging.getLogger(__name__)


def typing_from_value(value: Any, self_uid: Optional[str] = None) -> List[TypingUser]:
    """Typing users other than ``self_uid``, sorted by name."""
    if not isinstance(value, dict):
        return []
    users = [
        TypingUser.from_record(uid, record)
        for uid, record in value.items()
        if isinstance(record, dict) and uid != self_uid
    ]
    return sorted(users, key=lambda user: (user.name, user.uid))


class TypingSignal(StoreService):
    """Per-room set of users currently typing."""

    async def set_typing(
        self, room_id: str, uid: str, name: str, is_typing: bool
    ) -> None:
        """
        Set or clear ``uid``'s typing record in a room.

        Args:
            room_id: Room the user is typing in
            uid: The typing user
            name: Display name shown to others
            is_typing: True to upsert the record, False to remove it
        """
        require(validate_identifier(room_id, "room id"))
        require(validate_identifier(uid, "user id"))
        path = TYPING_USER_KEY.format(room_id=room_id, uid=uid)

        if is_typing:
            await self._call(
                "arm typing disconnect action",
                lambda: self.store.on_disconnect(path).remove(),
            )
            await self._call(
                "write typing",
                lambda: self.store.write(
                    path,
                    {"name": name, "timestamp": SERVER_TIMESTAMP},
                    ttl=self.config.typing_lease_seconds,
                ),
            )
        else:
            await self._call("clear typing", lambda: self.store.remove(path))
            await self._call(
                "cancel typing disconnect action",
                lambda: self.store.on_disconnect(path).cancel(),
            )
        logger.debug(f"User {uid} typing={is_typing} in room {room_id}")

    async def subscribe_typing(
        self,
        room_id: str,
        self_uid: str,
        on_change: Callable[[List[TypingUser]], None],
    ) -> Subscription:
        """Observe who is typing in a room, excluding ``self_uid``."""
        require(validate_identifier(room_id, "room id"))

        def deliver(value):
            on_change(typing_from_value(value, self_uid))

        token = await self.store.subscribe(TYPING_KEY.format(room_id=room_id), deliver)
        return Subscription(self.store, [token], f"typing in {room_id}")


class TypingDebouncer:
    """
    Client-side typing discipline for one user in one room.

    Every keystroke marks the user as typing (refresh writes are throttled)
    and re-arms an idle timer; when the timer fires the record is cleared.
    Writes are issued in keystroke order, one at a time.

    Args:
        signal: TypingSignal used for the writes
        room_id: Room being typed in
        uid: The local user
        name: The local user's display name
        idle_seconds: Silence after which typing is cleared
        refresh_seconds: Minimum gap between repeated "typing" writes
        clock: Monotonic clock in seconds (injectable for tests)
    """

    def __init__(
        self,
        signal: TypingSignal,
        room_id: str,
        uid: str,
        name: str,
        idle_seconds: float = TYPING_IDLE_SECONDS,
        refresh_seconds: float = TYPING_REFRESH_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.signal = signal
        self.room_id = room_id
        self.uid = uid
        self.name = name
        self.idle_seconds = idle_seconds
        self.refresh_seconds = refresh_seconds
        self._clock = clock
        self.typing = False
        self._last_sent: Optional[float] = None
        self._idle_handle: Optional[asyncio.TimerHandle] = None
        self._last_task: Optional[asyncio.Task] = None

    def keystroke(self) -> None:
        """Record a keystroke."""
        now = self._clock()
        if (
            not self.typing
            or self._last_sent is None
            or now - self._last_sent >= self.refresh_seconds
        ):
            self.typing = True
            self._last_sent = now
            self._schedule(True)

        if self._idle_handle is not None:
            self._idle_handle.cancel()
        self._idle_handle = asyncio.get_running_loop().call_later(
            self.idle_seconds, self._on_idle
        )

    def stop(self) -> None:
        """Clear typing now (message sent or input abandoned)."""
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None
        if self.typing:
            self.typing = False
            self._last_sent = None
            self._schedule(False)

    async def flush(self) -> None:
        """Clear typing and wait until every queued write has finished."""
        self.stop()
        await self.settle()

    async def settle(self) -> None:
        if self._last_task is not None:
            await asyncio.gather(self._last_task, return_exceptions=True)

    def _on_idle(self) -> None:
        self._idle_handle = None
        logger.debug(f"User {self.uid} idle in room {self.room_id}")
        self.stop()

    def _schedule(self, is_typing: bool) -> None:
        self._last_task = asyncio.get_running_loop().create_task(
            self._send(self._last_task, is_typing)
        )

    async def _send(self, prior: Optional[asyncio.Task], is_typing: bool) -> None:
        if prior is not None:
            await asyncio.gather(prior, return_exceptions=True)
        try:
            await self.signal.set_typing(self.room_id, self.uid, self.name, is_typing)
        except Exception as e:
            logger.error(
                f"Failed to set typing={is_typing} for {self.uid} in "
                f"room {self.room_id}: {e}"
            )
