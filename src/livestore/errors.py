"""
Store Errors

Exceptions raised by realtime store implementations.
"""

from typing import Optional


class StoreError(Exception):
    """
    A failure reported by, or while talking to, the realtime store.

    Attributes:
        code: Short machine-readable error code
        transient: True for transport failures worth retrying
            (connection dropped, timeout); False for failures the
            store rejected deliberately
    """

    def __init__(
        self,
        message: str,
        code: str = "store_error",
        transient: bool = False,
    ):
        super().__init__(message)
        self.code = code
        self.transient = transient

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({str(self)!r}, code={self.code!r}, "
            f"transient={self.transient})"
        )


class InvalidPathError(StoreError):
    """Raised when a path or key is not store-key-safe."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, code="invalid_path")
        self.path = path


class ConnectionClosedError(StoreError):
    """Raised when an operation is attempted on a closed connection."""

    def __init__(self, message: str = "Store connection is closed"):
        super().__init__(message, code="connection_closed", transient=True)
