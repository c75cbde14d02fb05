"""
Remote Store Client

This module provides ``RemoteStore``, a RealtimeStore implementation that
talks to a ``StoreServer`` over a WebSocket connection.

Architecture:
    - One WebSocket per RemoteStore; the server ties subscriptions and
      disconnect actions to it
    - Requests carry an id; a background receive loop resolves the
      matching future when the response arrives
    - Subscription ids are chosen client-side so the initial value event,
      which may arrive before the subscribe response, is never lost
    - Supports dependency injection for the network layer (for testability)
"""

import asyncio
import itertools
import json
import logging
from typing import Any, Callable, Dict, Optional

import websockets

from .base import ChangeCallback, OnDisconnect, RealtimeStore
from .errors import ConnectionClosedError, StoreError
from .paths import join_path
from .schemas import create_request

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0


class RemoteOnDisconnect(OnDisconnect):
    """Disconnect-action handle registered on the server."""

    def __init__(self, store: "RemoteStore", path: str):
        super().__init__(path)
        self._store = store

    async def write(self, value: Any) -> None:
        await self._store.request(
            "on_disconnect", {"path": self.path, "action": "write", "value": value}
        )

    async def update(self, mapping: Dict[str, Any]) -> None:
        await self._store.request(
            "on_disconnect", {"path": self.path, "action": "update", "mapping": mapping}
        )

    async def remove(self) -> None:
        await self._store.request(
            "on_disconnect", {"path": self.path, "action": "remove"}
        )

    async def cancel(self) -> None:
        await self._store.request(
            "on_disconnect", {"path": self.path, "action": "cancel"}
        )


class RemoteStore(RealtimeStore):
    """
    WebSocket client for a realtime store server.

    Attributes:
        url: WebSocket URL of the store server (e.g., ws://localhost:8765)
        websocket: Active WebSocket connection (None if not connected)
        request_timeout: Seconds to wait for each response
    """

    def __init__(
        self,
        url: str,
        websocket_factory: Optional[Callable] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        """
        Initialize the remote store client.

        Args:
            url: WebSocket URL of the store server
            websocket_factory: Optional factory for creating WebSocket
                             connections (for dependency injection/testing)
            request_timeout: Seconds to wait for each response
        """
        self.url = url
        self.websocket = None
        self.request_timeout = request_timeout
        self._websocket_factory = websocket_factory or websockets.connect
        self._connected = False
        self._request_ids = itertools.count(1)
        self._subscription_ids = itertools.count(1)
        self._pending: Dict[int, asyncio.Future] = {}
        self._callbacks: Dict[str, ChangeCallback] = {}
        self._receive_task: Optional[asyncio.Task] = None

        logger.info(f"RemoteStore initialized for {url}")

    async def connect(self) -> "RemoteStore":
        """
        Establish the WebSocket connection and start receiving.

        Raises:
            StoreError: If the connection fails (transient)
        """
        try:
            logger.info(f"Connecting to {self.url}...")
            self.websocket = await self._websocket_factory(self.url)
        except (OSError, websockets.exceptions.WebSocketException) as e:
            logger.error(f"Failed to connect to store: {e}")
            raise StoreError(
                f"Could not connect to {self.url}: {e}",
                code="connection_failed",
                transient=True,
            ) from e
        self._connected = True
        self._receive_task = asyncio.create_task(self._receive_loop())
        logger.info("Connected to store server")
        return self

    async def close(self) -> None:
        """Close the connection; the server runs our disconnect actions."""
        if self.websocket is not None:
            self._connected = False
            await self.websocket.close()
            if self._receive_task is not None:
                await asyncio.gather(self._receive_task, return_exceptions=True)
            self.websocket = None
            logger.info("Disconnected from store server")

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to the store server."""
        return self._connected and self.websocket is not None

    # ===== RealtimeStore operations =====

    async def read(self, path: str) -> Any:
        result = await self.request("read", {"path": path})
        return result.get("value")

    async def write(self, path: str, value: Any, ttl: Optional[float] = None) -> None:
        data = {"path": path, "value": value}
        if ttl is not None:
            data["ttl"] = ttl
        await self.request("write", data)

    async def update(self, path: str, mapping: Dict[str, Any]) -> None:
        await self.request("update", {"path": path, "mapping": mapping})

    async def remove(self, path: str) -> None:
        await self.request("remove", {"path": path})

    async def compare_and_set(self, path: str, expected: Any, value: Any) -> bool:
        result = await self.request(
            "compare_and_set", {"path": path, "expected": expected, "value": value}
        )
        return bool(result.get("committed"))

    async def push_key(self, path: str) -> str:
        result = await self.request("push_key", {"path": path})
        return result["key"]

    async def subscribe(self, path: str, on_change: ChangeCallback) -> str:
        subscription_id = f"sub-{next(self._subscription_ids)}"
        # Register first: the initial value may beat the response
        self._callbacks[subscription_id] = on_change
        try:
            await self.request(
                "subscribe", {"path": path, "subscription_id": subscription_id}
            )
        except StoreError:
            self._callbacks.pop(subscription_id, None)
            raise
        return subscription_id

    async def unsubscribe(self, token: str) -> None:
        if self._callbacks.pop(token, None) is None:
            return
        if self.is_connected:
            await self.request("unsubscribe", {"subscription_id": token})

    def on_disconnect(self, path: str) -> OnDisconnect:
        return RemoteOnDisconnect(self, join_path(path))

    async def server_time(self) -> int:
        result = await self.request("server_time")
        return result["time"]

    # ===== Transport =====

    async def request(self, request_type: str, data: Optional[dict] = None) -> dict:
        """
        Send a request and wait for its response.

        Raises:
            ConnectionClosedError: If not connected
            StoreError: If the server rejects the request, or the
                connection fails or times out (transient)
        """
        if not self.is_connected:
            raise ConnectionClosedError("Not connected to a store server")

        request_id = next(self._request_ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self.websocket.send(
                json.dumps(create_request(request_type, request_id, data))
            )
            return await asyncio.wait_for(future, self.request_timeout)
        except websockets.exceptions.ConnectionClosed as e:
            raise StoreError(
                f"Connection lost during {request_type}: {e}",
                code="connection_lost",
                transient=True,
            ) from e
        except asyncio.TimeoutError as e:
            raise StoreError(
                f"Timed out waiting for {request_type} response",
                code="timeout",
                transient=True,
            ) from e
        finally:
            self._pending.pop(request_id, None)

    async def _receive_loop(self) -> None:
        try:
            async for message in self.websocket:
                self._dispatch(message)
        except websockets.exceptions.ConnectionClosed:
            logger.warning("Connection closed by store server")
        finally:
            self._connected = False
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(ConnectionClosedError())
            self._pending.clear()

    def _dispatch(self, message: str) -> None:
        try:
            frame = json.loads(message)
        except json.JSONDecodeError:
            logger.error("Discarding malformed frame from store server")
            return

        frame_type = frame.get("type")
        data = frame.get("data") or {}

        if frame_type == "value":
            callback = self._callbacks.get(data.get("subscription_id"))
            if callback is None:
                return
            try:
                callback(data.get("value"))
            except Exception as e:
                logger.error(
                    f"Subscriber on '{data.get('path')}' raised: {e}",
                    exc_info=True,
                )
            return

        future = self._pending.get(frame.get("request_id"))
        if future is None or future.done():
            if frame_type == "error":
                logger.warning(f"Store error: {data.get('message')}")
            return
        if frame_type == "result":
            future.set_result(data)
        elif frame_type == "error":
            future.set_exception(
                StoreError(
                    data.get("message", "Unknown store error"),
                    code=data.get("error_code", "store_error"),
                )
            )
        else:
            logger.debug(f"Ignoring frame of type {frame_type}")
