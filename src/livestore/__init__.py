"""
Realtime Store Package

This package provides a hierarchical, key-addressed realtime store:
last-write-wins upserts, change subscriptions, server timestamps, push
keys, leases and disconnect-triggered compensating writes. It includes
the in-process engine, a WebSocket server exposing it, and a WebSocket
client implementing the same interface.
"""

from .base import ChangeCallback, OnDisconnect, RealtimeStore
from .errors import ConnectionClosedError, InvalidPathError, StoreError
from .memory import MemoryConnection, MemoryStore, ServerClock
from .paths import is_valid_key, join_path, split_path, validate_key
from .push_ids import PushIdGenerator
from .remote import RemoteStore
from .tree import SERVER_TIMESTAMP
from .websocket_server import StoreServer

__all__ = [
    "ChangeCallback",
    "OnDisconnect",
    "RealtimeStore",
    "ConnectionClosedError",
    "InvalidPathError",
    "StoreError",
    "MemoryConnection",
    "MemoryStore",
    "ServerClock",
    "is_valid_key",
    "join_path",
    "split_path",
    "validate_key",
    "PushIdGenerator",
    "RemoteStore",
    "SERVER_TIMESTAMP",
    "StoreServer",
]
