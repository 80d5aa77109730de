"""
Session tracking and theme preference.

SessionTracker mirrors the auth client's current identity and lets views
observe it. It is opened per request and closed when the request ends.
"""

import logging
from typing import Callable, MutableMapping, Mapping, Optional

from perspective.backend.auth import AuthClient, AuthEvent, Subscription
from perspective.backend.client import BackendError
from perspective.models import AuthSession, User

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[User]], None]


class SessionTracker:
    def __init__(self, auth: AuthClient):
        self.auth = auth
        self.user: Optional[User] = None
        self._observers: list[IdentityListener] = []
        self._subscription: Optional[Subscription] = None

    async def start(self) -> "SessionTracker":
        """Subscribe to auth changes, then load the current session once."""
        self._subscription = self.auth.on_auth_state_change(self._on_auth_change)
        try:
            session = await self.auth.get_session()
        except BackendError as exc:
            logger.warning("Could not load current session: %s", exc.message)
            session = None
        self._update(session.user if session else None)
        return self

    def _on_auth_change(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        logger.debug("Auth state changed: %s", event.value)
        self._update(session.user if session else None)

    def _update(self, user: Optional[User]) -> None:
        changed = user != self.user
        self.user = user
        if changed:
            for observer in list(self._observers):
                observer(user)

    def subscribe(self, observer: IdentityListener) -> Subscription:
        self._observers.append(observer)
        return Subscription(self._observers, observer)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._observers.clear()

    async def __aenter__(self) -> "SessionTracker":
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()


class ThemePreference:
    """The `theme` key in a client-side key-value store."""

    KEY = "theme"
    DARK = "dark"
    LIGHT = "light"

    def __init__(self, store: Mapping[str, str], prefers_dark: bool = False):
        self.store = store
        self.prefers_dark = prefers_dark

    @property
    def current(self) -> str:
        saved = self.store.get(self.KEY)
        if saved in (self.DARK, self.LIGHT):
            return saved
        return self.DARK if self.prefers_dark else self.LIGHT

    @property
    def is_dark(self) -> bool:
        return self.current == self.DARK

    def toggle(self, target: MutableMapping[str, str]) -> str:
        """Write the opposite theme into target and return it."""
        theme = self.LIGHT if self.is_dark else self.DARK
        target[self.KEY] = theme
        return theme
