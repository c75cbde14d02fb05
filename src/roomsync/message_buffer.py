"""
Message Buffer for Client-Side Message Ordering

Subscribers learn about messages in store-arrival order, which can differ
from the order the store committed them when several clients write at
once. This buffer keeps a room's messages in rendering order no matter
how they arrive.

Architecture:
    - Ordered by (timestamp, message_id): server timestamp first, ties
      broken by the arrival-ordered message key
    - Uses binary search for efficient insertion (O(log n))
    - Keyed by message_id, so redelivery of a message replaces it
      (reaction changes) instead of duplicating it
    - Optionally limits buffer size; a room session keeps the whole
      history (max_buffer_size=None)

Usage:
    buffer = MessageBuffer(max_buffer_size=None)
    buffer.replace_all(snapshot)
    rendered = buffer.messages
"""

import logging
from typing import Dict, Iterable, List, Optional

from .models import ChatMessage

logger = logging.getLogger(__name__)

# Maximum number of messages to keep in buffer
DEFAULT_MAX_BUFFER_SIZE = 1000


class MessageBuffer:
    """
    Buffer of messages in rendering order.

    Attributes:
        max_buffer_size: Maximum number of messages to keep; the oldest
            are dropped beyond it. None keeps everything.
    """

    def __init__(self, max_buffer_size: Optional[int] = DEFAULT_MAX_BUFFER_SIZE):
        """
        Initialize the message buffer.

        Args:
            max_buffer_size: Maximum number of messages to keep in buffer.
                             Older messages will be removed when exceeded.
                             None disables the limit.
        """
        self.max_buffer_size = max_buffer_size
        self._ordered: List[ChatMessage] = []
        self._by_id: Dict[str, ChatMessage] = {}

    @property
    def messages(self) -> List[ChatMessage]:
        """Messages in rendering order (a copy)."""
        return list(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._by_id

    def upsert(self, message: ChatMessage) -> bool:
        """
        Insert a message, or replace the stored copy with the same id.

        Args:
            message: The message to store

        Returns:
            bool: True if the buffer changed, False for invalid input
                or an identical redelivery
        """
        if not isinstance(message, ChatMessage) or not message.message_id:
            logger.warning("Invalid message: expected ChatMessage with an id")
            return False

        existing = self._by_id.get(message.message_id)
        if existing is not None:
            if existing == message:
                logger.debug("Duplicate message ignored: %s", message.message_id)
                return False
            self._ordered.pop(self._index_of(existing))

        insert_pos = self._find_insert_position(message)
        self._ordered.insert(insert_pos, message)
        self._by_id[message.message_id] = message

        logger.debug(
            "Message %s placed at position %s (ts: %s)",
            message.message_id,
            insert_pos,
            message.timestamp,
        )

        self._enforce_buffer_limit()
        return True

    def remove(self, message_id: str) -> bool:
        """
        Remove a message.

        Returns:
            bool: True if the message was present
        """
        message = self._by_id.pop(message_id, None)
        if message is None:
            return False
        self._ordered.pop(self._index_of(message))
        return True

    def replace_all(self, messages: Iterable[ChatMessage]) -> bool:
        """
        Make the buffer hold exactly the messages of a full snapshot.

        Messages missing from the snapshot (deleted) are removed; the rest
        are upserted, so unchanged messages keep their place.

        Returns:
            bool: True if the buffer changed
        """
        snapshot = list(messages)
        keep = {message.message_id for message in snapshot}
        changed = False
        for message_id in [m for m in self._by_id if m not in keep]:
            changed = self.remove(message_id) or changed
        for message in snapshot:
            changed = self.upsert(message) or changed
        return changed

    def clear(self) -> None:
        """
        Clear the buffer.

        This should be called when leaving a room.
        """
        self._ordered.clear()
        self._by_id.clear()
        logger.debug("Message buffer cleared")

    def _find_insert_position(self, message: ChatMessage) -> int:
        """
        Find the correct insert position using binary search.

        Args:
            message: The message to find a position for.

        Returns:
            Index where the message should be inserted.
        """
        key = message.sort_key
        left, right = 0, len(self._ordered)
        while left < right:
            mid = (left + right) // 2
            if self._ordered[mid].sort_key < key:
                left = mid + 1
            else:
                right = mid
        return left

    def _index_of(self, message: ChatMessage) -> int:
        index = self._find_insert_position(message)
        while self._ordered[index].message_id != message.message_id:
            index += 1
        return index

    def _enforce_buffer_limit(self) -> None:
        """Remove oldest messages if buffer exceeds maximum size."""
        if self.max_buffer_size is None:
            return
        if len(self._ordered) > self.max_buffer_size:
            excess = len(self._ordered) - self.max_buffer_size
            removed = self._ordered[:excess]
            self._ordered = self._ordered[excess:]
            for message in removed:
                self._by_id.pop(message.message_id, None)

            logger.warning(
                "Buffer limit exceeded, removed %s oldest messages", excess
            )
