"""
Room Session Controller

Drives one user's view of one open room: it composes the message, member,
typing and presence feeds into a single RoomView and turns user actions
into store writes.

Architecture:
    - open() reads the room once, then opens four independent
      subscriptions. Each feed updates its own slice of the view, so the
      view renders correctly in whatever order the feeds arrive.
    - Sends are fire-and-forget: send() returns immediately and the
      write's failure, if any, is logged. Typing updates go through a
      TypingDebouncer.
    - close() cancels every subscription, clears the user's typing record
      and waits for pending writes.

Usage:
    session = RoomSession(store, room_id, user, on_change=render)
    await session.open()
    session.on_input()
    session.send("hello")
    await session.close()
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set, Tuple

from livestore.base import RealtimeStore

from .config import ChatConfig
from .identity import UserProfile
from .members import MembershipRegistry
from .message_buffer import MessageBuffer
from .messages import MessageStream
from .models import ChatMessage, Member, Room, TypingUser
from .presence import (
    PresenceTracker,
    online_member_count,
    online_uids,
    split_by_presence,
)
from .rooms import RoomDirectory
from .service import Subscription
from .typing_signal import TypingDebouncer, TypingSignal
from .validation import require, validate_message_content

logger = logging.getLogger(__name__)


def typing_label(typing: List[TypingUser]) -> str:
    """Human readable "is typing" line, or "" when nobody types."""
    if not typing:
        return ""
    if len(typing) == 1:
        return f"{typing[0].name} is typing…"
    if len(typing) == 2:
        return f"{typing[0].name} and {typing[1].name} are typing…"
    return f"{len(typing)} people are typing…"


@dataclass
class RoomView:
    """
    Everything needed to render an open room.

    Attributes:
        room: Room metadata (read once when the session opened)
        messages: Messages in rendering order
        members: Members, admins first
        typing: Other users currently typing, by name
        online: uids of every online user
    """

    room: Optional[Room] = None
    messages: List[ChatMessage] = field(default_factory=list)
    members: List[Member] = field(default_factory=list)
    typing: List[TypingUser] = field(default_factory=list)
    online: Set[str] = field(default_factory=set)

    @property
    def member_count(self) -> int:
        return len(self.members)

    @property
    def online_count(self) -> int:
        return online_member_count(self.members, self.online)

    @property
    def members_by_presence(self) -> Tuple[List[Member], List[Member]]:
        return split_by_presence(self.members, self.online)

    @property
    def typing_label(self) -> str:
        return typing_label(self.typing)


class RoomSession:
    """
    One user's session in one room.

    Args:
        store: Store connection
        room_id: Room to open
        user: The signed-in user
        config: Runtime settings
        on_change: Called with the RoomView after every feed update
    """

    def __init__(
        self,
        store: RealtimeStore,
        room_id: str,
        user: UserProfile,
        config: Optional[ChatConfig] = None,
        on_change: Optional[Callable[[RoomView], None]] = None,
    ):
        self.store = store
        self.room_id = room_id
        self.user = user
        self.config = config or ChatConfig()
        self.on_change = on_change
        self.view = RoomView()
        self.buffer = MessageBuffer(max_buffer_size=None)

        self.directory = RoomDirectory(store, self.config)
        self.registry = MembershipRegistry(store, self.config)
        self.stream = MessageStream(store, self.config)
        self.presence = PresenceTracker(store, self.config)
        self.typing_signal = TypingSignal(store, self.config)
        self.debouncer = TypingDebouncer(
            self.typing_signal,
            room_id,
            user.uid,
            user.name,
            idle_seconds=self.config.typing_idle_seconds,
            refresh_seconds=self.config.typing_refresh_seconds,
        )

        self._subscriptions: List[Subscription] = []
        self._pending: Set[asyncio.Task] = set()
        self.is_open = False

    # ===== Lifecycle =====

    async def open(self) -> RoomView:
        """
        Load the room and start the live feeds.

        Raises:
            NotFoundError: If the room does not exist (no feed is opened)
        """
        self.view.room = await self.directory.find_room(self.room_id)
        self.is_open = True
        try:
            self._subscriptions.append(
                await self.stream.subscribe_messages(self.room_id, self._on_messages)
            )
            self._subscriptions.append(
                await self.registry.subscribe_members(self.room_id, self._on_members)
            )
            self._subscriptions.append(
                await self.typing_signal.subscribe_typing(
                    self.room_id, self.user.uid, self._on_typing
                )
            )
            self._subscriptions.append(
                await self.presence.subscribe_presence(self._on_presence)
            )
        except Exception:
            await self._cancel_subscriptions()
            self.is_open = False
            raise

        logger.info(f"User {self.user.uid} opened room {self.room_id}")
        self._render()
        return self.view

    async def close(self) -> None:
        """Stop the feeds, clear typing and wait for pending writes."""
        if not self.is_open:
            return
        self.is_open = False
        await self._cancel_subscriptions()
        await self.debouncer.flush()
        # Unconditional: an earlier idle clear may have failed
        try:
            await self.typing_signal.set_typing(
                self.room_id, self.user.uid, self.user.name, False
            )
        except Exception as e:
            logger.error(
                f"Failed to clear typing for {self.user.uid} in room "
                f"{self.room_id}: {e}"
            )
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        self.buffer.clear()
        logger.info(f"User {self.user.uid} closed room {self.room_id}")

    async def leave(self) -> None:
        """Close the session and give up membership of the room."""
        await self.close()
        await self.directory.leave_room(self.room_id, self.user.uid)

    async def _cancel_subscriptions(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            await subscription.cancel()

    # ===== User actions =====

    def on_input(self) -> None:
        """Keystroke hook."""
        if self.is_open:
            self.debouncer.keystroke()

    def send(self, text: str) -> asyncio.Task:
        """
        Send a message without waiting for the store.

        Raises:
            ValidationError: Immediately, if the text is empty or too long

        Returns:
            The task performing the write
        """
        require(validate_message_content(text))
        self.debouncer.stop()
        return self._spawn(
            self.stream.send_message(
                self.room_id, self.user.uid, self.user.name, self.user.avatar, text
            ),
            "send message",
        )

    async def react(self, message_id: str, emoji: str) -> Optional[bool]:
        return await self.stream.toggle_reaction(
            self.room_id, message_id, emoji, self.user.uid
        )

    async def delete(self, message_id: str) -> bool:
        """Delete one of the user's own messages."""
        return await self.stream.delete_own_message(
            self.room_id, message_id, self.user.uid
        )

    def _spawn(self, coroutine, description: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coroutine)
        self._pending.add(task)

        def done(finished: asyncio.Task) -> None:
            self._pending.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                logger.error(
                    f"Failed to {description} in room {self.room_id}: {error}"
                )

        task.add_done_callback(done)
        return task

    # ===== Feeds =====

    def _on_messages(self, messages: List[ChatMessage]) -> None:
        self.buffer.replace_all(messages)
        self.view.messages = self.buffer.messages
        self._render()

    def _on_members(self, members: List[Member]) -> None:
        self.view.members = members
        self._render()

    def _on_typing(self, typing: List[TypingUser]) -> None:
        self.view.typing = typing
        self._render()

    def _on_presence(self, presence) -> None:
        self.view.online = online_uids(presence)
        self._render()

    def _render(self) -> None:
        if self.on_change is not None and self.is_open:
            self.on_change(self.view)
