"""
WebSocket Server for the Realtime Store

Exposes a MemoryStore to remote clients over WebSocket connections.
Every WebSocket is one store connection: it owns its subscriptions and
disconnect actions, and when the socket closes for any reason (a clean
close, a network failure, a crashed client) those actions run.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import websockets

from .errors import StoreError
from .memory import ConnectionState, MemoryStore
from .paths import join_path
from .schemas import (
    create_error_response,
    create_result_response,
    create_value_event,
)

logger = logging.getLogger(__name__)


class ClientSession:
    """
    Server-side state for one WebSocket client.

    Outgoing frames (responses and subscription events) go through a
    single queue so they reach the client in the order they were produced.
    """

    def __init__(self, websocket, state: ConnectionState):
        self.websocket = websocket
        self.state = state
        # subscription_id -> engine listener id
        self.subscriptions: Dict[str, int] = {}
        self.outbox: asyncio.Queue = asyncio.Queue()

    def enqueue(self, frame: Dict[str, Any]) -> None:
        self.outbox.put_nowait(json.dumps(frame))

    async def pump(self) -> None:
        """Send queued frames until cancelled or the socket closes."""
        while True:
            frame = await self.outbox.get()
            try:
                await self.websocket.send(frame)
            except websockets.exceptions.ConnectionClosed:
                return


class StoreServer:
    """
    WebSocket server for the realtime store.

    Attributes:
        store: The engine holding the shared state
        host: Host address to bind to
        port: Port to listen on (0 picks a free port)
        sessions: Connected clients keyed by WebSocket
    """

    def __init__(self, store: MemoryStore, host: str, port: int):
        """
        Initialize the WebSocket server.

        Args:
            store: The engine to expose
            host: Host address to bind to
            port: Port to listen on
        """
        self.store = store
        self.host = host
        self.port = port
        self.server = None
        self.sessions: Dict[Any, ClientSession] = {}

    async def start(self):
        """Start the WebSocket server."""
        self.server = await websockets.serve(
            self.handle_client, self.host, self.port
        )
        sockets = getattr(self.server, "sockets", None)
        if sockets:
            self.port = sockets[0].getsockname()[1]
        logger.info(f"Store server started on ws://{self.host}:{self.port}")

    async def stop(self):
        """Stop the WebSocket server."""
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            logger.info("Store server stopped")

    async def handle_client(self, websocket):
        """
        Handle a client connection from open to close.

        Args:
            websocket: The WebSocket connection
        """
        state = self.store.open_connection(f"ws-{id(websocket)}")
        session = ClientSession(websocket, state)
        self.sessions[websocket] = session
        pump_task = asyncio.create_task(session.pump())
        logger.info(f"Client {state.connection_id} connected")

        reason = "closed"
        try:
            async for message in websocket:
                self.process_message(session, message)
        except websockets.exceptions.ConnectionClosed:
            reason = "dropped"
            logger.info(f"Client {state.connection_id} connection lost")
        except Exception as e:
            reason = "failed"
            logger.error(f"Error handling client {state.connection_id}: {e}")
        finally:
            # Runs the client's disconnect actions, however it went away
            state.close(reason)
            self.sessions.pop(websocket, None)
            pump_task.cancel()
            try:
                await pump_task
            except asyncio.CancelledError:
                pass

    def process_message(self, session: ClientSession, message: str) -> None:
        """
        Process one request frame and queue its response.

        Request handlers are synchronous: each commits against the engine
        before the next frame is read, which keeps a client's requests in
        order.

        Args:
            session: The client's session
            message: The raw frame (JSON)
        """
        try:
            frame = json.loads(message)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON received: {e}")
            session.enqueue(
                create_error_response(None, "invalid_json", "Invalid JSON format")
            )
            return

        if not isinstance(frame, dict):
            session.enqueue(
                create_error_response(None, "invalid_request", "Frame must be an object")
            )
            return

        request_id = frame.get("request_id")
        request_type = frame.get("type")
        data = frame.get("data") or {}

        handler = self._handlers().get(request_type)
        if handler is None:
            logger.warning(f"Unknown request type: {request_type}")
            session.enqueue(
                create_error_response(
                    request_id,
                    "unknown_type",
                    f"Unknown request type '{request_type}'",
                )
            )
            return

        try:
            result = handler(session, data)
            session.enqueue(create_result_response(request_id, result))
        except StoreError as e:
            logger.warning(f"Rejected {request_type} request: {e}")
            session.enqueue(create_error_response(request_id, e.code, str(e)))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed {request_type} request: {e}")
            session.enqueue(
                create_error_response(request_id, "invalid_request", str(e))
            )
        except Exception as e:
            logger.error(f"Error processing {request_type} request: {e}")
            session.enqueue(
                create_error_response(request_id, "internal_error", "Internal server error")
            )

    def _handlers(self):
        return {
            "read": self.handle_read,
            "write": self.handle_write,
            "update": self.handle_update,
            "remove": self.handle_remove,
            "compare_and_set": self.handle_compare_and_set,
            "push_key": self.handle_push_key,
            "subscribe": self.handle_subscribe,
            "unsubscribe": self.handle_unsubscribe,
            "on_disconnect": self.handle_on_disconnect,
            "server_time": self.handle_server_time,
        }

    # ===== Request handlers =====

    def handle_read(self, session: ClientSession, data: dict) -> dict:
        return {"value": self.store.get(data["path"])}

    def handle_write(self, session: ClientSession, data: dict) -> dict:
        self.store.set(data["path"], data.get("value"), ttl=data.get("ttl"))
        return {}

    def handle_update(self, session: ClientSession, data: dict) -> dict:
        self.store.update(data["path"], data["mapping"])
        return {}

    def handle_remove(self, session: ClientSession, data: dict) -> dict:
        self.store.delete(data["path"])
        return {}

    def handle_compare_and_set(self, session: ClientSession, data: dict) -> dict:
        committed = self.store.compare_and_set(
            data["path"], data.get("expected"), data.get("value")
        )
        return {"committed": committed}

    def handle_push_key(self, session: ClientSession, data: dict) -> dict:
        return {"key": self.store.push_key(data["path"])}

    def handle_subscribe(self, session: ClientSession, data: dict) -> dict:
        subscription_id = str(data["subscription_id"])
        path = join_path(data["path"])
        if subscription_id in session.subscriptions:
            raise StoreError(
                f"Subscription '{subscription_id}' already exists",
                code="duplicate_subscription",
            )

        def on_change(value):
            session.enqueue(create_value_event(subscription_id, path, value))

        listener_id = session.state.add_listener(path, on_change)
        session.subscriptions[subscription_id] = listener_id
        logger.debug(
            f"Client {session.state.connection_id} subscribed to '{path}' "
            f"as {subscription_id}"
        )
        return {"subscription_id": subscription_id}

    def handle_unsubscribe(self, session: ClientSession, data: dict) -> dict:
        listener_id = session.subscriptions.pop(str(data["subscription_id"]), None)
        if listener_id is not None:
            session.state.remove_listener(listener_id)
        return {}

    def handle_on_disconnect(self, session: ClientSession, data: dict) -> dict:
        action = data["action"]
        path = data["path"]
        if action == "cancel":
            session.state.cancel_on_disconnect(path)
        elif action == "write":
            session.state.register_on_disconnect(path, "write", data.get("value"))
        elif action == "update":
            session.state.register_on_disconnect(path, "update", data["mapping"])
        elif action == "remove":
            session.state.register_on_disconnect(path, "remove")
        else:
            raise StoreError(
                f"Unknown disconnect action '{action}'", code="invalid_request"
            )
        return {}

    def handle_server_time(self, session: ClientSession, data: dict) -> dict:
        return {"time": self.store.server_time()}

    @property
    def client_count(self) -> int:
        return len(self.sessions)

    def get_session(self, websocket) -> Optional[ClientSession]:
        return self.sessions.get(websocket)
