#!/usr/bin/env python3
"""
Demo Script for the Chat Core

Two users, Ann and Bo, meet in a private room: Ann creates it, Bo joins
with the password, they chat and react, then Bo's connection drops and
presence converges to offline.

Usage:
    roomsync-demo                      # in-process store
    roomsync-demo --store remote       # store server at STORE_URL
    roomsync-demo --store remote --store-url ws://localhost:8765
"""

import argparse
import asyncio
import logging
import os

from livestore.memory import MemoryStore
from livestore.remote import RemoteStore

from .config import ChatConfig
from .errors import AuthorizationError
from .identity import UserProfile
from .presence import PresenceTracker
from .rooms import RoomDirectory
from .session import RoomSession, RoomView

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def render(view: RoomView) -> None:
    """Log a one-line summary of the room as a UI would draw it."""
    latest = view.messages[-1].text if view.messages else "-"
    logger.info(
        f"[{view.room.name}] {view.online_count}/{view.member_count} online, "
        f"{len(view.messages)} message(s), latest: {latest!r} "
        f"{view.typing_label}"
    )


async def run_scenario(connect, config: ChatConfig):
    """
    Play the two-user scenario.

    Args:
        connect: Coroutine function returning a new store connection
        config: Runtime settings
    """
    ann = UserProfile("ann", display_name="Ann")
    bo = UserProfile("bo", email="bo@example.com")

    ann_store = await connect()
    bo_store = await connect()
    ann_presence = PresenceTracker(ann_store, config)
    bo_presence = PresenceTracker(bo_store, config)
    await ann_presence.begin_session(ann.uid)
    await bo_presence.begin_session(bo.uid)

    logger.info("=" * 60)
    logger.info("Chat Core Demo")
    logger.info("=" * 60)

    directory = RoomDirectory(ann_store, config)
    room_id = await directory.create_room(
        "Night Owls", "private", "Late chats", "secret1", ann.uid, ann.name, ann.avatar
    )

    bo_directory = RoomDirectory(bo_store, config)
    try:
        await bo_directory.join_room_with_password(
            room_id, bo.uid, bo.name, bo.avatar, "wrong"
        )
    except AuthorizationError as e:
        logger.info(f"Bo was refused: {e}")
    await bo_directory.join_room_with_password(
        room_id, bo.uid, bo.name, bo.avatar, "secret1"
    )

    ann_session = RoomSession(ann_store, room_id, ann, config, on_change=render)
    await ann_session.open()
    bo_session = RoomSession(bo_store, room_id, bo, config)
    await bo_session.open()

    bo_session.on_input()
    await asyncio.sleep(0.1)
    await bo_session.send("hello night owls")
    await ann_session.send("hi Bo")
    await asyncio.sleep(0.1)

    if ann_session.view.messages:
        first = ann_session.view.messages[0]
        await ann_session.react(first.message_id, "🔥")

    # Bo vanishes without closing anything
    if isinstance(bo_store, RemoteStore):
        await bo_store.close()
    else:
        bo_store.drop()
    await asyncio.sleep(0.1)
    logger.info(f"Online after Bo dropped: {sorted(ann_session.view.online)}")

    await ann_session.close()
    await ann_presence.end_session(ann.uid)
    await ann_store.close()

    logger.info("=" * 60)
    logger.info("Demo completed successfully!")
    logger.info("=" * 60)


def main():
    """Main entry point for the demo script."""
    parser = argparse.ArgumentParser(description="Demo the chat core")
    parser.add_argument(
        "--store",
        choices=["memory", "remote"],
        default="memory",
        help="Use an in-process store or a store server",
    )
    parser.add_argument(
        "--store-url",
        default=None,
        help="WebSocket URL of the store server (default: STORE_URL)",
    )
    args = parser.parse_args()

    config = ChatConfig.from_env()
    if args.store_url:
        config.store_url = args.store_url

    if args.store == "remote":

        async def connect():
            return await RemoteStore(
                config.store_url, request_timeout=config.request_timeout
            ).connect()

        asyncio.run(run_scenario(connect, config))
    else:
        engine = MemoryStore()

        async def connect():
            return engine.connect()

        asyncio.run(run_scenario(connect, config))


if __name__ == "__main__":
    main()
