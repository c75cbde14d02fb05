"""
Identity Provider Interface

Authentication lives outside the chat core. The core only needs the
signed-in user's id and display profile, and to hear about sign-in and
sign-out.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

DEFAULT_DISPLAY_NAME = "User"


@dataclass(frozen=True)
class UserProfile:
    """
    An authenticated user.

    Attributes:
        uid: Stable user id
        display_name: Name chosen by the user, if any
        email: E-mail address, if any
    """

    uid: str
    display_name: Optional[str] = None
    email: Optional[str] = None

    @property
    def name(self) -> str:
        """Display name, else the e-mail's local part, else "User"."""
        if self.display_name:
            return self.display_name
        if self.email:
            local_part = self.email.split("@")[0]
            if local_part:
                return local_part
        return DEFAULT_DISPLAY_NAME

    @property
    def avatar(self) -> str:
        """First letter of the display name, upper-cased."""
        return (self.name[:1] or "U").upper()


AuthCallback = Callable[[Optional[UserProfile]], None]


class IdentityProvider(ABC):
    """Source of the current user."""

    @abstractmethod
    def current_user(self) -> Optional[UserProfile]:
        """The signed-in user, or None."""

    @abstractmethod
    def on_auth_change(self, callback: AuthCallback) -> Callable[[], None]:
        """
        Call ``callback`` with the user (or None) on every sign-in or
        sign-out.

        Returns:
            Function that removes the callback
        """


class StaticIdentityProvider(IdentityProvider):
    """In-process provider whose user is set directly (demos, tests)."""

    def __init__(self, user: Optional[UserProfile] = None):
        self._user = user
        self._callbacks = []

    def current_user(self) -> Optional[UserProfile]:
        return self._user

    def on_auth_change(self, callback: AuthCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def remove():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def sign_in(self, user: UserProfile) -> None:
        self._user = user
        for callback in list(self._callbacks):
            callback(user)

    def sign_out(self) -> None:
        self._user = None
        for callback in list(self._callbacks):
            callback(None)
