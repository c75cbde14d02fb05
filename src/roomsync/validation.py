"""
Validation Utilities

Local precondition checks run before any store call. Each ``validate_*``
function returns ``(is_valid, error_message)``; ``require`` turns a failed
check into a ValidationError.
"""

from typing import Optional, Tuple

from livestore.paths import is_valid_key

from .errors import ValidationError

MIN_ROOM_NAME_LENGTH = 3
MIN_ROOM_PASSWORD_LENGTH = 6
MAX_MESSAGE_LENGTH = 5000

ROOM_TYPES = ("public", "private")


def validate_room_name(name: str) -> Tuple[bool, Optional[str]]:
    if not isinstance(name, str) or len(name.strip()) < MIN_ROOM_NAME_LENGTH:
        return (
            False,
            f"Room name must be at least {MIN_ROOM_NAME_LENGTH} characters",
        )
    return True, None


def validate_room_type(room_type: str) -> Tuple[bool, Optional[str]]:
    if room_type not in ROOM_TYPES:
        return False, f"Room type must be one of {', '.join(ROOM_TYPES)}"
    return True, None


def validate_room_password(
    room_type: str, password: Optional[str]
) -> Tuple[bool, Optional[str]]:
    """Private rooms need a password of at least six characters."""
    if room_type != "private":
        return True, None
    if not password or len(password) < MIN_ROOM_PASSWORD_LENGTH:
        return (
            False,
            f"Private room password must be at least "
            f"{MIN_ROOM_PASSWORD_LENGTH} characters",
        )
    return True, None


def validate_message_content(text: str) -> Tuple[bool, Optional[str]]:
    """
    Validate message content.

    Args:
        text: The message content to validate

    Returns:
        tuple: (is_valid, error_message)
    """
    if not isinstance(text, str) or not text.strip():
        return False, "Message content cannot be empty"

    if len(text) > MAX_MESSAGE_LENGTH:
        return (
            False,
            f"Message content too long (max {MAX_MESSAGE_LENGTH} characters)",
        )

    return True, None


def validate_identifier(value: str, label: str) -> Tuple[bool, Optional[str]]:
    """Ids and emoji become path segments, so they must be key-safe."""
    if not isinstance(value, str) or not is_valid_key(value):
        return False, f"Invalid {label}: {value!r}"
    return True, None


def require(result: Tuple[bool, Optional[str]]) -> None:
    """Raise ValidationError if a check failed."""
    is_valid, error = result
    if not is_valid:
        raise ValidationError(error)
