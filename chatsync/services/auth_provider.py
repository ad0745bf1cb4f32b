"""Session source backed by signed JWT access tokens."""
from __future__ import annotations

import inspect
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from uuid import UUID

from jose import JWTError, jwt

from ..config import get_settings
from ..security import MissingSecretError, require_secret
from .errors import ValidationError
from .ports import AuthSession, SessionCallback

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_MINUTES = 1440


class InvalidTokenError(ValidationError):
    """The access token is malformed, expired or signed with another key."""


@lru_cache(maxsize=1)
def _get_jwt_secret() -> str:
    try:
        return require_secret("JWT_SECRET_KEY")
    except MissingSecretError as exc:
        raise RuntimeError(str(exc)) from exc


class TokenAuthProvider:
    """Hold the current session and tell subscribers when it changes.

    Credential checks happen elsewhere; this provider only trusts tokens it
    can verify with the shared signing key.
    """

    def __init__(self, *, secret: str | None = None, algorithm: str | None = None) -> None:
        self._secret = secret
        self._algorithm = algorithm or get_settings().jwt_algorithm
        self._session: AuthSession | None = None
        self._callbacks: list[SessionCallback] = []

    @property
    def secret(self) -> str:
        return self._secret or _get_jwt_secret()

    def issue_token(self, user_id: UUID, *, expires_minutes: int | None = None) -> str:
        """Create a signed token for ``user_id``."""

        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + timedelta(minutes=expires_minutes or DEFAULT_TOKEN_MINUTES),
        }
        return jwt.encode(payload, self.secret, algorithm=self._algorithm)

    def verify(self, token: str) -> AuthSession:
        """Decode ``token`` without changing the current session."""

        try:
            payload = jwt.decode(token, self.secret, algorithms=[self._algorithm])
        except JWTError as exc:
            raise InvalidTokenError("Invalid access token") from exc
        subject = payload.get("sub")
        if not subject:
            raise InvalidTokenError("Access token has no subject")
        try:
            user_id = UUID(subject)
        except ValueError as exc:
            raise InvalidTokenError("Access token subject is not a user id") from exc
        expires = payload.get("exp")
        expires_at = datetime.fromtimestamp(expires, tz=timezone.utc) if expires else None
        return AuthSession(user_id=user_id, access_token=token, expires_at=expires_at)

    async def get_session(self) -> AuthSession | None:
        session = self._session
        if session is not None and session.expires_at is not None and session.expires_at <= datetime.now(timezone.utc):
            logger.info("Session for %s expired", session.user_id)
            await self._set_session(None)
            return None
        return session

    def on_session_change(self, callback: SessionCallback):
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove

    async def sign_in(self, token: str) -> AuthSession:
        session = self.verify(token)
        await self._set_session(session)
        return session

    async def sign_out(self) -> None:
        await self._set_session(None)

    async def _set_session(self, session: AuthSession | None) -> None:
        self._session = session
        for callback in list(self._callbacks):
            result = callback(session)
            if inspect.isawaitable(result):
                await result


__all__ = ["InvalidTokenError", "TokenAuthProvider"]
