"""Bearer-token session providers."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import jwt
import structlog

from companyscope.exceptions import Unauthenticated
from companyscope.types import SessionEvent

logger = structlog.get_logger(__name__)

SessionListener = Callable[[SessionEvent, "Session | None"], None]


@dataclass(frozen=True, slots=True)
class Session:
    """An authenticated session. Owned by the provider; consumers only read it."""

    user_id: str
    token: str
    expires_at: float  # unix timestamp

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.expires_at

    @classmethod
    def from_access_token(cls, token: str) -> Session:
        """Build a session from a JWT access token's ``sub`` and ``exp`` claims.

        The signature is not verified here; the backend verifies it on every request.
        """
        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False},
            )
        except jwt.PyJWTError as exc:
            msg = f"Malformed access token: {exc}"
            raise Unauthenticated(msg) from exc

        sub = claims.get("sub")
        exp = claims.get("exp")
        if not sub or exp is None:
            msg = "Access token is missing sub or exp claim"
            raise Unauthenticated(msg)
        return cls(user_id=str(sub), token=token, expires_at=float(exp))


class SessionTokenProvider(ABC):
    """Source of the current bearer token."""

    @abstractmethod
    async def get_token(self) -> str | None:
        """Return the current bearer token, or None when unauthenticated."""

    @property
    @abstractmethod
    def user_id(self) -> str | None:
        """Id of the signed-in user, or None."""

    @abstractmethod
    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener for sign-in, sign-out and token refresh.

        Returns a callable that removes the listener.
        """


class InMemorySessionProvider(SessionTokenProvider):
    """Holds one session in memory and notifies listeners when it changes."""

    def __init__(self, session: Session | None = None) -> None:
        self._session = session
        self._listeners: list[SessionListener] = []

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def user_id(self) -> str | None:
        return self._session.user_id if self._session else None

    async def get_token(self) -> str | None:
        session = self._session
        if session is None:
            return None
        if session.is_expired:
            logger.info("session_token_expired", user_id=session.user_id)
            return None
        return session.token

    def sign_in(self, session: Session) -> None:
        previous = self._session
        self._session = session
        if previous is not None and previous.user_id == session.user_id:
            event = SessionEvent.TOKEN_REFRESHED
        else:
            event = SessionEvent.SIGNED_IN
        logger.info("session_changed", session_event=str(event), user_id=session.user_id)
        self._notify(event, session)

    def refresh_token(self, token: str, expires_at: float) -> None:
        """Swap in a refreshed token for the current user."""
        if self._session is None:
            msg = "Cannot refresh a token without a session"
            raise Unauthenticated(msg)
        self.sign_in(Session(user_id=self._session.user_id, token=token, expires_at=expires_at))

    def sign_out(self) -> None:
        if self._session is None:
            return
        user_id = self._session.user_id
        self._session = None
        logger.info("session_changed", session_event=str(SessionEvent.SIGNED_OUT), user_id=user_id)
        self._notify(SessionEvent.SIGNED_OUT, None)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, event: SessionEvent, session: Session | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception as exc:
                logger.warning("session_listener_failed", session_event=str(event), error=str(exc))
