"""
Presence Tracker

Global online/offline map, one ``status/{uid}`` record per signed-in user.

Self-healing:
    ``begin_session`` registers a store-owned disconnect action that marks
    the user offline. If the client crashes or loses its network, the
    store runs it; nothing on the client has to survive for presence to
    converge to offline.
"""

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from livestore.tree import SERVER_TIMESTAMP

from .identity import IdentityProvider, UserProfile
from .models import Member, Presence
from .service import StoreService, Subscription
from .store_keys import STATUS_KEY, STATUS_PATH
from .validation import require, validate_identifier

logger = logging.getLogger(__name__)

ONLINE_RECORD = {"online": True, "lastSeen": SERVER_TIMESTAMP}
OFFLINE_RECORD = {"online": False, "lastSeen": SERVER_TIMESTAMP}


def online_uids(presence: Dict[str, Presence]) -> Set[str]:
    return {uid for uid, status in presence.items() if status.online}


def online_member_count(members: Iterable[Member], online: Set[str]) -> int:
    """Number of room members currently online."""
    return sum(1 for member in members if member.uid in online)


def split_by_presence(
    members: Iterable[Member], online: Set[str]
) -> Tuple[List[Member], List[Member]]:
    """Partition members into (online, offline), keeping their order."""
    online_members, offline_members = [], []
    for member in members:
        (online_members if member.uid in online else offline_members).append(member)
    return online_members, offline_members


def presence_from_value(value) -> Dict[str, Presence]:
    if not isinstance(value, dict):
        return {}
    return {
        uid: Presence.from_record(uid, record)
        for uid, record in value.items()
        if isinstance(record, dict)
    }


class PresenceTracker(StoreService):
    """Online status of users."""

    async def begin_session(self, uid: str) -> None:
        """
        Mark ``uid`` online and arm the offline write for disconnects.

        The disconnect action is registered before the online write, so
        there is no window in which the user is online without it.
        """
        require(validate_identifier(uid, "user id"))
        path = STATUS_KEY.format(uid=uid)
        await self._call(
            "arm presence disconnect action",
            lambda: self.store.on_disconnect(path).write(OFFLINE_RECORD),
        )
        await self._call("mark online", lambda: self.store.write(path, ONLINE_RECORD))
        logger.info(f"Presence session started for {uid}")

    async def end_session(self, uid: str) -> None:
        """Mark ``uid`` offline explicitly."""
        require(validate_identifier(uid, "user id"))
        path = STATUS_KEY.format(uid=uid)
        await self._call("mark offline", lambda: self.store.write(path, OFFLINE_RECORD))
        await self._call(
            "cancel presence disconnect action",
            lambda: self.store.on_disconnect(path).cancel(),
        )
        logger.info(f"Presence session ended for {uid}")

    async def subscribe_presence(
        self, on_change: Callable[[Dict[str, Presence]], None]
    ) -> Subscription:
        """Observe the full ``{uid: Presence}`` map."""

        def deliver(value):
            on_change(presence_from_value(value))

        token = await self.store.subscribe(STATUS_PATH, deliver)
        return Subscription(self.store, [token], "presence")

    async def get_presence(self, uid: str) -> Optional[Presence]:
        require(validate_identifier(uid, "user id"))
        record = await self._call(
            "read presence", lambda: self.store.read(STATUS_KEY.format(uid=uid))
        )
        if not isinstance(record, dict):
            return None
        return Presence.from_record(uid, record)


class PresenceBinder:
    """
    Keeps presence in step with an identity provider: signing in begins a
    session, signing out (or switching user) ends the previous one.

    Transitions run in the order the auth events arrived.
    """

    def __init__(self, tracker: PresenceTracker, identity: IdentityProvider):
        self.tracker = tracker
        self.identity = identity
        self.current_uid: Optional[str] = None
        self._remove_callback: Optional[Callable[[], None]] = None
        self._last_task: Optional[asyncio.Task] = None

    def attach(self) -> "PresenceBinder":
        """Start following the provider, handling the current user now."""
        self._remove_callback = self.identity.on_auth_change(self._on_auth_change)
        user = self.identity.current_user()
        if user is not None:
            self._on_auth_change(user)
        return self

    def _on_auth_change(self, user: Optional[UserProfile]) -> None:
        previous, self.current_uid = self.current_uid, user.uid if user else None
        if previous == self.current_uid:
            return
        self._last_task = asyncio.get_running_loop().create_task(
            self._transition(self._last_task, previous, self.current_uid)
        )

    async def _transition(
        self,
        prior: Optional[asyncio.Task],
        previous: Optional[str],
        current: Optional[str],
    ) -> None:
        if prior is not None:
            await asyncio.gather(prior, return_exceptions=True)
        try:
            if previous:
                await self.tracker.end_session(previous)
            if current:
                await self.tracker.begin_session(current)
        except Exception as e:
            logger.error(f"Presence transition {previous} -> {current} failed: {e}")

    async def settle(self) -> None:
        """Wait for queued transitions to finish."""
        if self._last_task is not None:
            await asyncio.gather(self._last_task, return_exceptions=True)

    async def detach(self, end_session: bool = True) -> None:
        """Stop following the provider, optionally marking the user offline."""
        if self._remove_callback is not None:
            self._remove_callback()
            self._remove_callback = None
        await self.settle()
        if end_session and self.current_uid:
            await self.tracker.end_session(self.current_uid)
            self.current_uid = None
