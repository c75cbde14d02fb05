"""
Message Stream

A room's append-mostly message log: sending, reactions, deletion and the
live ordered view.

Ordering:
    Subscribers see changes in store-arrival order. The rendering order is
    ascending server timestamp, ties broken by message key, and every
    consumer re-sorts on each update rather than trusting delivery order.

Reactions:
    ``reactions[emoji]`` is a set of uids. A toggle is applied with an
    atomic compare-and-set on the message record, retried on contention,
    so toggles never lose each other's writes and a toggle racing a
    deletion can never bring the message back.
"""

import copy
import logging
from typing import Any, Callable, List, Optional

from livestore.errors import StoreError
from livestore.tree import SERVER_TIMESTAMP, normalize

from .errors import AuthorizationError
from .models import ChatMessage
from .service import StoreService, Subscription
from .store_keys import MESSAGE_KEY, MESSAGES_KEY, ROOM_KEY
from .validation import require, validate_identifier, validate_message_content

logger = logging.getLogger(__name__)

# Compare-and-set attempts before a reaction toggle gives up
MAX_TOGGLE_ATTEMPTS = 8

# Reactions offered by the message picker
REACTION_EMOJIS = ("❤️", "😂", "😮", "😢", "👍", "🔥", "🎉", "💯")


def sort_messages(messages: List[ChatMessage]) -> List[ChatMessage]:
    """Rendering order: ascending timestamp, then message key."""
    return sorted(messages, key=lambda message: message.sort_key)


def messages_from_value(value: Any) -> List[ChatMessage]:
    """Convert the raw ``messages/{room}`` value to sorted messages."""
    if not isinstance(value, dict):
        return []
    return sort_messages(
        [
            ChatMessage.from_record(message_id, record)
            for message_id, record in value.items()
            if isinstance(record, dict)
        ]
    )


class MessageStream(StoreService):
    """Per-room ordered message log."""

    async def send_message(
        self, room_id: str, uid: str, name: str, avatar: str, text: str
    ) -> str:
        """
        Append a message and refresh the room's last-message summary.

        The summary is a separate write, so observers may see it before
        or after the message itself.

        Returns:
            The new message id

        Raises:
            ValidationError: If the text is empty or too long
            StoreError: If a write fails
        """
        require(validate_identifier(room_id, "room id"))
        require(validate_identifier(uid, "user id"))
        require(validate_message_content(text))

        message_id = await self._call(
            "generate message id",
            lambda: self.store.push_key(MESSAGES_KEY.format(room_id=room_id)),
        )
        record = ChatMessage(message_id, uid, name, avatar, text).to_record()
        await self._call(
            "write message",
            lambda: self.store.write_with_server_timestamp(
                MESSAGE_KEY.format(room_id=room_id, message_id=message_id), record
            ),
        )
        await self._call(
            "update room summary",
            lambda: self.store.update(
                ROOM_KEY.format(room_id=room_id),
                {"lastMessage": text, "lastMessageTime": SERVER_TIMESTAMP},
            ),
        )

        logger.info(f"Added message {message_id} from {uid} to room {room_id}")
        return message_id

    async def toggle_reaction(
        self, room_id: str, message_id: str, emoji: str, uid: str
    ) -> Optional[bool]:
        """
        Add ``uid`` to ``reactions[emoji]`` if absent, remove it if present.

        Returns:
            True if the reaction is now set, False if it was removed, or
            None if the message does not exist (a harmless no-op)

        Raises:
            StoreError: If the write kept losing to concurrent writers
        """
        require(validate_identifier(room_id, "room id"))
        require(validate_identifier(message_id, "message id"))
        require(validate_identifier(emoji, "emoji"))
        require(validate_identifier(uid, "user id"))

        path = MESSAGE_KEY.format(room_id=room_id, message_id=message_id)
        for attempt in range(1, MAX_TOGGLE_ATTEMPTS + 1):
            current = await self._call("read message", lambda: self.store.read(path))
            if not isinstance(current, dict):
                logger.debug(
                    f"Reaction toggle on missing message {message_id} ignored"
                )
                return None

            updated = copy.deepcopy(current)
            reactions = updated.setdefault("reactions", {})
            users = reactions.setdefault(emoji, {})
            if users.get(uid):
                del users[uid]
                present = False
            else:
                users[uid] = True
                present = True

            # A swap whose response was lost may still have committed
            try:
                committed = await self.store.compare_and_set(path, current, updated)
            except StoreError as e:
                if not e.transient:
                    raise
                logger.warning(
                    f"Reaction toggle on {message_id} interrupted ({e}), "
                    f"checking whether it was applied"
                )
                after = await self._call("read message", lambda: self.store.read(path))
                committed = after == normalize(updated)
            if committed:
                logger.debug(
                    f"User {uid} {'added' if present else 'removed'} {emoji} "
                    f"on message {message_id}"
                )
                return present
            logger.debug(
                f"Reaction toggle on {message_id} contended (attempt {attempt})"
            )

        raise StoreError(
            f"Reaction toggle on message {message_id} kept conflicting",
            code="contention",
            transient=True,
        )

    async def delete_message(self, room_id: str, message_id: str) -> None:
        """Hard-delete a message. Deleting a missing message is a no-op."""
        require(validate_identifier(room_id, "room id"))
        require(validate_identifier(message_id, "message id"))
        await self._call(
            "delete message",
            lambda: self.store.remove(
                MESSAGE_KEY.format(room_id=room_id, message_id=message_id)
            ),
        )
        logger.info(f"Deleted message {message_id} from room {room_id}")

    async def delete_own_message(self, room_id: str, message_id: str, uid: str) -> bool:
        """
        Delete a message on behalf of ``uid``, who must be its sender.

        Returns:
            True if deleted, False if the message was already gone

        Raises:
            AuthorizationError: If ``uid`` did not send the message
        """
        require(validate_identifier(room_id, "room id"))
        require(validate_identifier(message_id, "message id"))
        sender = await self._call(
            "read message sender",
            lambda: self.store.read(
                MESSAGE_KEY.format(room_id=room_id, message_id=message_id)
                + "/senderUid"
            ),
        )
        if sender is None:
            return False
        if sender != uid:
            logger.warning(
                f"User {uid} tried to delete message {message_id} sent by {sender}"
            )
            raise AuthorizationError("Only the sender can delete this message")
        await self.delete_message(room_id, message_id)
        return True

    async def subscribe_messages(
        self, room_id: str, on_change: Callable[[List[ChatMessage]], None]
    ) -> Subscription:
        """
        Observe a room's messages.

        ``on_change`` receives the full list in rendering order
        immediately and after every send, reaction change or deletion.
        """
        require(validate_identifier(room_id, "room id"))

        def deliver(value):
            on_change(messages_from_value(value))

        token = await self.store.subscribe(
            MESSAGES_KEY.format(room_id=room_id), deliver
        )
        return Subscription(self.store, [token], f"messages of {room_id}")

    async def get_messages(self, room_id: str) -> List[ChatMessage]:
        require(validate_identifier(room_id, "room id"))
        value = await self._call(
            "read messages",
            lambda: self.store.read(MESSAGES_KEY.format(room_id=room_id)),
        )
        return messages_from_value(value)
