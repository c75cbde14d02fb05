"""
Chat Core Configuration

Settings are read from the environment once, with defaults suitable for a
local store server.
"""

import os
from dataclasses import dataclass

DEFAULT_STORE_URL = "ws://localhost:8765"
TYPING_IDLE_SECONDS = 2.0  # idle time before "is typing" is cleared
TYPING_LEASE_SECONDS = 10.0  # store-side lifetime of a typing record
TYPING_REFRESH_SECONDS = 1.0  # minimum gap between typing refresh writes
RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY = 0.2  # seconds, doubled after each failed attempt
REQUEST_TIMEOUT = 10.0


@dataclass
class ChatConfig:
    """
    Runtime settings for the chat core.

    Attributes:
        store_url: WebSocket URL of the store server
        typing_idle_seconds: Keystroke silence before typing is cleared
        typing_lease_seconds: Lease attached to typing records
        typing_refresh_seconds: Throttle for repeated typing writes
        retry_attempts: Attempts for store calls failing transiently
        retry_base_delay: First backoff delay in seconds
        request_timeout: Seconds to wait for a store response
    """

    store_url: str = DEFAULT_STORE_URL
    typing_idle_seconds: float = TYPING_IDLE_SECONDS
    typing_lease_seconds: float = TYPING_LEASE_SECONDS
    typing_refresh_seconds: float = TYPING_REFRESH_SECONDS
    retry_attempts: int = RETRY_ATTEMPTS
    retry_base_delay: float = RETRY_BASE_DELAY
    request_timeout: float = REQUEST_TIMEOUT

    @classmethod
    def from_env(cls) -> "ChatConfig":
        """Build a config from environment variables."""
        return cls(
            store_url=os.environ.get("STORE_URL", DEFAULT_STORE_URL),
            typing_idle_seconds=float(
                os.environ.get("TYPING_IDLE_SECONDS", TYPING_IDLE_SECONDS)
            ),
            typing_lease_seconds=float(
                os.environ.get("TYPING_LEASE_SECONDS", TYPING_LEASE_SECONDS)
            ),
            typing_refresh_seconds=float(
                os.environ.get("TYPING_REFRESH_SECONDS", TYPING_REFRESH_SECONDS)
            ),
            retry_attempts=int(os.environ.get("STORE_RETRY_ATTEMPTS", RETRY_ATTEMPTS)),
            retry_base_delay=float(
                os.environ.get("STORE_RETRY_BASE_DELAY", RETRY_BASE_DELAY)
            ),
            request_timeout=float(os.environ.get("REQUEST_TIMEOUT", REQUEST_TIMEOUT)),
        )
