"""
Base class for the chat components.

Each component talks to the store only through the injected
RealtimeStore, wrapping calls in the configured retry policy.
"""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from livestore.base import RealtimeStore

from .config import ChatConfig
from .retry import retry_async

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreService:
    """
    A chat component backed by a realtime store.

    Attributes:
        store: The store connection used for every read and write
        config: Runtime settings
    """

    def __init__(self, store: RealtimeStore, config: Optional[ChatConfig] = None):
        self.store = store
        self.config = config or ChatConfig()

    async def _call(
        self, description: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        return await retry_async(
            operation,
            attempts=self.config.retry_attempts,
            base_delay=self.config.retry_base_delay,
            description=description,
        )


class Subscription:
    """
    Handle for one or more store subscriptions backing a live view.

    ``cancel`` is idempotent.
    """

    def __init__(self, store: RealtimeStore, tokens, description: str = ""):
        self._store = store
        self._tokens = list(tokens)
        self.description = description

    @property
    def active(self) -> bool:
        return bool(self._tokens)

    async def cancel(self) -> None:
        tokens, self._tokens = self._tokens, []
        for token in tokens:
            await self._store.unsubscribe(token)
        if tokens:
            logger.debug(f"Cancelled subscription {self.description}")
