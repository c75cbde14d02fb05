"""
In-Memory Store Engine

This module holds the authoritative state of a realtime store: the data
tree, the subscription listeners, leases and the per-connection
disconnect actions. It is single-threaded and meant to run inside one
asyncio event loop; every mutation commits synchronously, so listeners
observe changes to a path in commit order.

Architecture:
    - MemoryStore is the engine shared by every connection
    - ConnectionState tracks what one connection owns (listeners and
      disconnect actions) so they can be released when it ends
    - MemoryConnection exposes the engine through the async
      RealtimeStore interface for in-process clients and tests

Usage:
    store = MemoryStore()
    conn = store.connect()
    await conn.write("rooms/r1/name", "General")
    conn.drop()  # abrupt disconnect: disconnect actions run
"""

import copy
import itertools
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .base import ChangeCallback, OnDisconnect, RealtimeStore
from .errors import ConnectionClosedError, StoreError
from .paths import is_related, join_path, split_path
from .push_ids import PushIdGenerator
from .tree import (
    DataTree,
    contains_server_values,
    normalize,
    resolve_server_values,
)

logger = logging.getLogger(__name__)

Parts = Tuple[str, ...]

_UNSET = object()


def lease_millis(ttl: Any) -> Optional[int]:
    """
    Convert a lease length in seconds to milliseconds.

    Raises:
        StoreError: If ``ttl`` is not a positive number
    """
    if ttl is None:
        return None
    if isinstance(ttl, bool) or not isinstance(ttl, (int, float)) or ttl <= 0:
        raise StoreError(f"Invalid lease length: {ttl!r}", code="invalid_value")
    return int(ttl * 1000)


class ServerClock:
    """
    Millisecond commit clock that never repeats or goes backwards.

    Args:
        clock: Callable returning wall-clock time in seconds
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0

    def tick(self) -> int:
        """Return a timestamp strictly greater than any issued before."""
        now = int(self._clock() * 1000)
        self._last = max(now, self._last + 1)
        return self._last

    def now(self) -> int:
        """Return the current time without consuming a timestamp."""
        return max(int(self._clock() * 1000), self._last)


@dataclass
class Listener:
    """A subscription registered on the engine."""

    listener_id: int
    parts: Parts
    callback: ChangeCallback
    last_value: Any = _UNSET


class ConnectionState:
    """
    Resources owned by a single store connection.

    Attributes:
        connection_id: Identifier used in logs
        listener_ids: Subscriptions opened by this connection
        closed: True once the connection has ended
    """

    def __init__(self, engine: "MemoryStore", connection_id: str):
        self.engine = engine
        self.connection_id = connection_id
        self.listener_ids: set = set()
        self.closed = False
        # parts -> (operation, payload); registration order is run order
        self._disconnect_ops: "OrderedDict[Parts, Tuple[str, Any]]" = (
            OrderedDict()
        )

    def add_listener(self, path: str, callback: ChangeCallback) -> int:
        listener_id = self.engine.add_listener(path, callback)
        self.listener_ids.add(listener_id)
        return listener_id

    def remove_listener(self, listener_id: int) -> None:
        self.listener_ids.discard(listener_id)
        self.engine.remove_listener(listener_id)

    def register_on_disconnect(self, path: str, operation: str, payload: Any = None):
        """
        Register a compensating action for ``path``.

        A later registration for the same path replaces the earlier one.
        """
        if operation not in ("write", "update", "remove"):
            raise StoreError(
                f"Unknown disconnect operation '{operation}'",
                code="invalid_request",
            )
        parts = split_path(path)
        # Validate now so a bad payload fails at registration, not on disconnect
        if operation == "write":
            normalize(resolve_server_values(payload, 0))
        elif operation == "update":
            self.engine.expand_update(parts, payload)
        self._disconnect_ops.pop(parts, None)
        self._disconnect_ops[parts] = (operation, copy.deepcopy(payload))
        logger.debug(
            f"Connection {self.connection_id} registered on-disconnect "
            f"{operation} at '{path}'"
        )

    def cancel_on_disconnect(self, path: str) -> None:
        """Cancel actions registered at ``path`` or below it."""
        parts = split_path(path)
        for registered in list(self._disconnect_ops):
            if registered[: len(parts)] == parts:
                del self._disconnect_ops[registered]

    @property
    def pending_disconnect_paths(self) -> List[str]:
        return ["/".join(parts) for parts in self._disconnect_ops]

    def close(self, reason: str = "closed") -> None:
        """
        End the connection: drop its listeners, then run its disconnect
        actions. Safe to call more than once.
        """
        if self.closed:
            return
        self.closed = True

        for listener_id in list(self.listener_ids):
            self.engine.remove_listener(listener_id)
        self.listener_ids.clear()

        ops = list(self._disconnect_ops.items())
        self._disconnect_ops.clear()
        logger.info(
            f"Connection {self.connection_id} {reason}, running "
            f"{len(ops)} disconnect action(s)"
        )
        for parts, (operation, payload) in ops:
            try:
                if operation == "write":
                    self.engine.commit([(parts, payload)])
                elif operation == "update":
                    self.engine.commit(self.engine.expand_update(parts, payload))
                else:
                    self.engine.commit([(parts, None)])
            except StoreError as e:
                logger.error(
                    f"Disconnect action {operation} at '{'/'.join(parts)}' "
                    f"failed: {e}"
                )


class MemoryStore:
    """
    The realtime store engine.

    Args:
        clock: Wall-clock source in seconds (injectable for tests)
        data: Optional initial tree contents
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        data: Optional[Dict[str, Any]] = None,
    ):
        self._tree = DataTree(data)
        self._clock = ServerClock(clock)
        self._push_ids = PushIdGenerator(clock)
        self._listeners: Dict[int, Listener] = {}
        self._listener_ids = itertools.count(1)
        self._connection_ids = itertools.count(1)
        # parts -> expiry in server milliseconds
        self._leases: Dict[Parts, int] = {}
        logger.info("MemoryStore initialized")

    # ===== Reads =====

    def get(self, path: str) -> Any:
        return self._tree.get(split_path(path))

    def server_time(self) -> int:
        return self._clock.now()

    def snapshot(self) -> Dict[str, Any]:
        return self._tree.snapshot()

    def push_key(self, path: str) -> str:
        split_path(path)
        return self._push_ids.generate()

    # ===== Writes =====

    def set(self, path: str, value: Any, ttl: Optional[float] = None) -> None:
        parts = split_path(path)
        self.commit([(parts, value)], ttl=ttl)
        logger.debug(f"Set '{path}'" + (f" with {ttl}s lease" if ttl else ""))

    def delete(self, path: str) -> None:
        self.commit([(split_path(path), None)])
        logger.debug(f"Removed '{path}'")

    def update(self, path: str, mapping: Dict[str, Any]) -> None:
        changes = self.expand_update(split_path(path), mapping)
        if changes:
            self.commit(changes)
            logger.debug(f"Updated {len(changes)} path(s) under '{path}'")

    def compare_and_set(self, path: str, expected: Any, value: Any) -> bool:
        parts = split_path(path)
        current = self._tree.get(parts)
        if current != normalize(expected):
            logger.debug(f"compare_and_set on '{path}' lost the race")
            return False
        self.commit([(parts, value)])
        return True

    def expand_update(
        self, base: Parts, mapping: Dict[str, Any]
    ) -> List[Tuple[Parts, Any]]:
        """
        Turn ``{relative_path: value}`` into absolute changes.

        Raises:
            StoreError: If the mapping is not a dict or two entries
                overlap (one is an ancestor of another)
        """
        if not isinstance(mapping, dict):
            raise StoreError("Update must be a mapping", code="invalid_value")
        changes = []
        for relative, value in mapping.items():
            changes.append((base + split_path(relative), value))
        for i, (first, _) in enumerate(changes):
            for second, _ in changes[i + 1 :]:
                if is_related(first, second):
                    raise StoreError(
                        f"Update paths overlap: '{'/'.join(first)}' and "
                        f"'{'/'.join(second)}'",
                        code="invalid_update",
                    )
        return changes

    def commit(
        self, changes: List[Tuple[Parts, Any]], ttl: Optional[float] = None
    ) -> None:
        """
        Apply a batch of changes atomically and notify listeners.

        All values are resolved and validated before the tree is touched,
        so a bad value or lease rejects the whole batch.
        """
        lease = lease_millis(ttl)
        if any(contains_server_values(value) for _, value in changes):
            timestamp = self._clock.tick()
            changes = [
                (parts, resolve_server_values(value, timestamp))
                for parts, value in changes
            ]
        prepared = [(parts, normalize(value)) for parts, value in changes]

        for parts, value in prepared:
            self._tree.set(parts, value)
            self._clear_leases(parts)
            if lease is not None and value is not None:
                self._leases[parts] = self._clock.now() + lease

        self._notify([parts for parts, _ in prepared])

    # ===== Leases =====

    def expire_leases(self) -> List[str]:
        """
        Remove every path whose lease has lapsed.

        Returns:
            The removed paths
        """
        now = self._clock.now()
        expired = [parts for parts, expiry in self._leases.items() if expiry <= now]
        if not expired:
            return []
        for parts in expired:
            self._leases.pop(parts, None)
        self.commit([(parts, None) for parts in expired])
        paths = ["/".join(parts) for parts in expired]
        logger.info(f"Expired {len(paths)} lease(s): {paths}")
        return paths

    def lease_expiry(self, path: str) -> Optional[int]:
        return self._leases.get(split_path(path))

    def _clear_leases(self, parts: Parts) -> None:
        for leased in [p for p in self._leases if p[: len(parts)] == parts]:
            del self._leases[leased]

    # ===== Listeners =====

    def add_listener(self, path: str, callback: ChangeCallback) -> int:
        """Register ``callback`` on ``path``; it fires immediately."""
        listener = Listener(
            listener_id=next(self._listener_ids),
            parts=split_path(path),
            callback=callback,
        )
        self._listeners[listener.listener_id] = listener
        self._deliver(listener)
        return listener.listener_id

    def remove_listener(self, listener_id: int) -> bool:
        return self._listeners.pop(listener_id, None) is not None

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, changed: List[Parts]) -> None:
        for listener in list(self._listeners.values()):
            if listener.listener_id not in self._listeners:
                continue
            if any(is_related(listener.parts, parts) for parts in changed):
                self._deliver(listener)

    def _deliver(self, listener: Listener) -> None:
        value = self._tree.get(listener.parts)
        if listener.last_value is not _UNSET and value == listener.last_value:
            return
        listener.last_value = value
        try:
            listener.callback(copy.deepcopy(value))
        except Exception as e:
            logger.error(
                f"Listener on '{'/'.join(listener.parts)}' raised: {e}",
                exc_info=True,
            )

    # ===== Connections =====

    def open_connection(self, connection_id: Optional[str] = None) -> ConnectionState:
        connection_id = connection_id or f"conn-{next(self._connection_ids)}"
        logger.info(f"Connection {connection_id} opened")
        return ConnectionState(self, connection_id)

    def connect(self, connection_id: Optional[str] = None) -> "MemoryConnection":
        """Open an in-process connection implementing RealtimeStore."""
        return MemoryConnection(self, self.open_connection(connection_id))


class MemoryOnDisconnect(OnDisconnect):
    """Disconnect-action handle backed by a ConnectionState."""

    def __init__(self, connection: "MemoryConnection", path: str):
        super().__init__(path)
        self._connection = connection

    async def write(self, value: Any) -> None:
        self._connection.state_or_raise().register_on_disconnect(
            self.path, "write", value
        )

    async def update(self, mapping: Dict[str, Any]) -> None:
        self._connection.state_or_raise().register_on_disconnect(
            self.path, "update", mapping
        )

    async def remove(self) -> None:
        self._connection.state_or_raise().register_on_disconnect(
            self.path, "remove"
        )

    async def cancel(self) -> None:
        self._connection.state_or_raise().cancel_on_disconnect(self.path)


class MemoryConnection(RealtimeStore):
    """
    In-process connection to a MemoryStore.

    Behaves like a remote client would: operations fail once the
    connection has ended, and ending it (gracefully via ``close`` or
    abruptly via ``drop``) runs the registered disconnect actions.
    """

    def __init__(self, engine: MemoryStore, state: ConnectionState):
        self.engine = engine
        self.state = state

    @property
    def connection_id(self) -> str:
        return self.state.connection_id

    @property
    def is_connected(self) -> bool:
        return not self.state.closed

    def state_or_raise(self) -> ConnectionState:
        if self.state.closed:
            raise ConnectionClosedError()
        return self.state

    async def read(self, path: str) -> Any:
        self.state_or_raise()
        return self.engine.get(path)

    async def write(self, path: str, value: Any, ttl: Optional[float] = None) -> None:
        self.state_or_raise()
        self.engine.set(path, value, ttl=ttl)

    async def update(self, path: str, mapping: Dict[str, Any]) -> None:
        self.state_or_raise()
        self.engine.update(path, mapping)

    async def remove(self, path: str) -> None:
        self.state_or_raise()
        self.engine.delete(path)

    async def compare_and_set(self, path: str, expected: Any, value: Any) -> bool:
        self.state_or_raise()
        return self.engine.compare_and_set(path, expected, value)

    async def push_key(self, path: str) -> str:
        self.state_or_raise()
        return self.engine.push_key(path)

    async def subscribe(self, path: str, on_change: ChangeCallback) -> str:
        return str(self.state_or_raise().add_listener(path, on_change))

    async def unsubscribe(self, token: str) -> None:
        if self.state.closed:
            return
        try:
            self.state.remove_listener(int(token))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring unknown subscription token {token!r}")

    def on_disconnect(self, path: str) -> OnDisconnect:
        return MemoryOnDisconnect(self, join_path(path))

    async def server_time(self) -> int:
        self.state_or_raise()
        return self.engine.server_time()

    async def close(self) -> None:
        self.state.close("closed")

    def drop(self) -> None:
        """Simulate the connection terminating without a goodbye."""
        self.state.close("dropped")
