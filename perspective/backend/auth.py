"""
Auth service client.

Holds at most one session and notifies listeners whenever it changes.
Credentials are forwarded to the backend once and never kept.
"""

import logging
from enum import Enum
from typing import Callable, Optional

from perspective.backend.client import BackendClient, BackendError
from perspective.models import AuthSession

logger = logging.getLogger(__name__)


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


AuthListener = Callable[[AuthEvent, Optional[AuthSession]], None]


class Subscription:
    """Handle returned by subscribe calls; unsubscribe() may be called twice."""

    def __init__(self, listeners: list, callback: Callable):
        self._listeners = listeners
        self._callback = callback

    @property
    def active(self) -> bool:
        return self._callback in self._listeners

    def unsubscribe(self) -> None:
        if self._callback in self._listeners:
            self._listeners.remove(self._callback)


class AuthClient:
    def __init__(self, backend: BackendClient, session: Optional[AuthSession] = None):
        self.backend = backend
        self.session = session
        self.changed = False
        self._listeners: list[AuthListener] = []

    @property
    def access_token(self) -> Optional[str]:
        return self.session.access_token if self.session else None

    def on_auth_state_change(self, callback: AuthListener) -> Subscription:
        self._listeners.append(callback)
        return Subscription(self._listeners, callback)

    def _set_session(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        self.session = session
        self.changed = True
        for listener in list(self._listeners):
            listener(event, session)

    async def get_session(self) -> Optional[AuthSession]:
        """Current session, refreshed first when its access token has expired."""
        if self.session is None:
            return None
        if self.session.is_expired:
            await self.refresh_session()
        return self.session

    async def refresh_session(self) -> AuthSession:
        if self.session is None:
            raise BackendError("Not signed in")
        response = await self.backend.request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": self.session.refresh_token},
        )
        session = AuthSession.from_token_response(response.json())
        self._set_session(AuthEvent.TOKEN_REFRESHED, session)
        return session

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        response = await self.backend.request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = AuthSession.from_token_response(response.json())
        logger.info("User %s signed in", session.user.id)
        self._set_session(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_up(self, email: str, password: str) -> Optional[AuthSession]:
        """Register an account.

        Returns the new session when the backend confirms accounts
        automatically, otherwise None (the user confirms by email first).
        """
        response = await self.backend.request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password},
        )
        data = response.json()
        if not data.get("access_token"):
            logger.info("Sign up for %s awaiting email confirmation", email)
            return None
        session = AuthSession.from_token_response(data)
        self._set_session(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        """Clear the local session, revoking it remotely when possible."""
        if self.session is not None:
            try:
                await self.backend.request(
                    "POST", "/auth/v1/logout", token=self.session.access_token
                )
            except BackendError as exc:
                logger.warning("Remote sign out failed: %s", exc.message)
        self._set_session(AuthEvent.SIGNED_OUT, None)
