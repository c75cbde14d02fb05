"""
Path Utilities

Store paths are ``/``-separated segments addressing a node of the data
tree. The empty path addresses the root.
"""

from typing import List, Tuple

from .errors import InvalidPathError

# Characters that may not appear in a key
FORBIDDEN_KEY_CHARS = frozenset(".$#[]/")

# Maximum size of a single key in bytes
MAX_KEY_BYTES = 768


def validate_key(key: str) -> str:
    """
    Check that a single path segment is store-key-safe.

    Args:
        key: The segment to check

    Returns:
        The key, unchanged

    Raises:
        InvalidPathError: If the key is empty, too long or contains a
            forbidden or control character
    """
    if not isinstance(key, str) or not key:
        raise InvalidPathError("Key must be a non-empty string", key)
    if len(key.encode("utf-8")) > MAX_KEY_BYTES:
        raise InvalidPathError(
            f"Key exceeds {MAX_KEY_BYTES} bytes", key
        )
    for char in key:
        if char in FORBIDDEN_KEY_CHARS or ord(char) < 32 or ord(char) == 127:
            raise InvalidPathError(
                f"Key {key!r} contains forbidden character {char!r}", key
            )
    return key


def is_valid_key(key: str) -> bool:
    """Return True if ``key`` could be used as a path segment."""
    try:
        validate_key(key)
    except InvalidPathError:
        return False
    return True


def split_path(path: str) -> Tuple[str, ...]:
    """
    Split a path into validated segments.

    Leading and trailing slashes are ignored, so ``"/rooms/abc/"`` and
    ``"rooms/abc"`` address the same node.

    Raises:
        InvalidPathError: If the path is not a string or a segment is
            invalid (including empty segments such as ``"a//b"``)
    """
    if not isinstance(path, str):
        raise InvalidPathError("Path must be a string")
    stripped = path.strip("/")
    if not stripped:
        return ()
    parts = stripped.split("/")
    for part in parts:
        validate_key(part)
    return tuple(parts)


def join_path(*segments: str) -> str:
    """Join segments (or partial paths) into a single path."""
    parts: List[str] = []
    for segment in segments:
        parts.extend(split_path(segment))
    return "/".join(parts)


def is_related(a: Tuple[str, ...], b: Tuple[str, ...]) -> bool:
    """True if one path is an ancestor of (or equal to) the other."""
    shortest = min(len(a), len(b))
    return a[:shortest] == b[:shortest]
