"""
Realtime Store Interface

The abstract capability the chat core is written against. Any backend
that honors per-path ordered subscriptions and last-write-wins semantics
can implement it: the in-process ``MemoryConnection`` and the websocket
``RemoteStore`` both do.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from .tree import SERVER_TIMESTAMP

# Callback receiving the value at a subscribed path (None when absent)
ChangeCallback = Callable[[Any], None]


class OnDisconnect(ABC):
    """
    Compensating actions for one path, executed by the store when the
    connection that registered them ends.
    """

    def __init__(self, path: str):
        self.path = path

    @abstractmethod
    async def write(self, value: Any) -> None:
        """Write ``value`` at the path on disconnect."""

    @abstractmethod
    async def update(self, mapping: Dict[str, Any]) -> None:
        """Apply a multi-path update relative to the path on disconnect."""

    @abstractmethod
    async def remove(self) -> None:
        """Remove the path on disconnect."""

    @abstractmethod
    async def cancel(self) -> None:
        """Cancel actions registered at the path and below it."""


class RealtimeStore(ABC):
    """
    Hierarchical key-addressed store with subscriptions.

    Every method is a suspension point. Paths are ``/``-separated; values
    are JSON scalars or nested dicts and may embed ``SERVER_TIMESTAMP``,
    which the store replaces with its commit time (integer milliseconds,
    strictly increasing).
    """

    @abstractmethod
    async def read(self, path: str) -> Any:
        """One-shot fetch. Returns None if nothing is stored at path."""

    @abstractmethod
    async def write(
        self, path: str, value: Any, ttl: Optional[float] = None
    ) -> None:
        """
        Upsert ``value`` at ``path`` (last write wins).

        Args:
            path: Target path
            value: New value; None deletes
            ttl: Optional lease in seconds after which the store removes
                the path unless it is written again
        """

    @abstractmethod
    async def update(self, path: str, mapping: Dict[str, Any]) -> None:
        """Atomically apply ``{relative_path: value}`` below ``path``."""

    @abstractmethod
    async def remove(self, path: str) -> None:
        """Delete the subtree at ``path``."""

    @abstractmethod
    async def compare_and_set(
        self, path: str, expected: Any, value: Any
    ) -> bool:
        """
        Write ``value`` only if the current value equals ``expected``.

        Returns:
            True if the write committed
        """

    @abstractmethod
    async def push_key(self, path: str) -> str:
        """Generate a unique, arrival-ordered child key for ``path``."""

    @abstractmethod
    async def subscribe(self, path: str, on_change: ChangeCallback) -> str:
        """
        Observe ``path``.

        ``on_change`` fires immediately with the current value, then every
        time the value changes.

        Returns:
            Token to pass to ``unsubscribe``
        """

    @abstractmethod
    async def unsubscribe(self, token: str) -> None:
        """Cancel a subscription. Unknown tokens are ignored."""

    @abstractmethod
    def on_disconnect(self, path: str) -> OnDisconnect:
        """Return the disconnect-action handle for ``path``."""

    @abstractmethod
    async def server_time(self) -> int:
        """Current store time in milliseconds."""

    @abstractmethod
    async def close(self) -> None:
        """End the connection, running its disconnect actions."""

    async def write_with_server_timestamp(
        self, path: str, value: Dict[str, Any], field: str = "timestamp"
    ) -> None:
        """Write ``value`` with ``value[field]`` set to the commit time."""
        stamped = dict(value)
        stamped[field] = SERVER_TIMESTAMP
        await self.write(path, stamped)
