"""Current principal and profile, with change notification."""
from __future__ import annotations

import logging
import re
import secrets
import string
from typing import Any, Callable
from uuid import UUID

from ..constants import DEFAULT_THEME_SETTINGS, PROFILES_TABLE, USERNAME_PATTERN
from ..schemas import ProfileRead
from .errors import NotFoundError, StoreConflictError, ValidationError
from .listeners import ListenerSet
from .ports import AuthProvider, AuthSession, RecordStore

logger = logging.getLogger(__name__)

_USERNAME_RE = re.compile(USERNAME_PATTERN)
_ACCENT_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
_THEMES = {"dark", "light"}
_BASE36 = string.ascii_lowercase + string.digits


def validate_username(username: str) -> str:
    candidate = (username or "").strip()
    if len(candidate) < 3 or len(candidate) > 20:
        raise ValidationError("Username must be between 3 and 20 characters long")
    if not _USERNAME_RE.match(candidate):
        raise ValidationError("Username can only contain letters, numbers, and underscores")
    return candidate


def _generated_username() -> str:
    return "user_" + "".join(secrets.choice(_BASE36) for _ in range(8))


class IdentityCache:
    """Own the signed-in user's profile and tell dependents when it changes."""

    def __init__(self, auth: AuthProvider, store: RecordStore) -> None:
        self._auth = auth
        self._store = store
        self._session: AuthSession | None = None
        self._profile: ProfileRead | None = None
        self._listeners = ListenerSet("identity")
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def session(self) -> AuthSession | None:
        return self._session

    @property
    def user_id(self) -> UUID | None:
        return self._session.user_id if self._session else None

    @property
    def profile(self) -> ProfileRead | None:
        return self._profile

    def add_listener(self, callback: Callable[[ProfileRead | None], Any]) -> Callable[[], None]:
        return self._listeners.add(callback)

    async def start(self) -> ProfileRead | None:
        if self._unsubscribe is None:
            self._unsubscribe = self._auth.on_session_change(self._on_session_change)
        await self._on_session_change(await self._auth.get_session())
        return self._profile

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def _on_session_change(self, session: AuthSession | None) -> None:
        previous = self.user_id
        # Resolve first; a store failure leaves the previous identity in place.
        profile = await self._load_or_create(session.user_id) if session is not None else None
        self._session = session
        self._profile = profile
        if profile is None:
            if previous is not None:
                logger.info("Signed out %s", previous)
        else:
            logger.info("Identity resolved to %s (%s)", profile.id, profile.username)
        await self._listeners.notify_async(profile)

    async def _load_or_create(self, user_id: UUID) -> ProfileRead:
        rows = await self._store.select(PROFILES_TABLE, where={"id": user_id})
        if rows:
            return ProfileRead.model_validate(rows[0])
        username = _generated_username()
        logger.info("Creating profile %s for first session of %s", username, user_id)
        try:
            row = await self._store.insert(
                PROFILES_TABLE,
                {
                    "id": user_id,
                    "username": username,
                    "display_name": username,
                    "theme_settings": dict(DEFAULT_THEME_SETTINGS),
                },
            )
        except StoreConflictError:
            # Another client of the same user created it first.
            rows = await self._store.select(PROFILES_TABLE, where={"id": user_id})
            if not rows:
                raise
            row = rows[0]
        return ProfileRead.model_validate(row)

    async def refresh(self) -> ProfileRead | None:
        if self._session is None:
            return None
        rows = await self._store.select(PROFILES_TABLE, where={"id": self._session.user_id})
        if not rows:
            raise NotFoundError("Profile no longer exists")
        self._profile = ProfileRead.model_validate(rows[0])
        await self._listeners.notify_async(self._profile)
        return self._profile

    def _require_profile(self) -> ProfileRead:
        if self._profile is None:
            raise ValidationError("No signed-in user")
        return self._profile

    async def update_profile(
        self,
        *,
        username: str | None = None,
        display_name: str | None = None,
        avatar_url: str | None = None,
    ) -> ProfileRead:
        profile = self._require_profile()
        values: dict[str, Any] = {}
        if username is not None and username != profile.username:
            values["username"] = validate_username(username)
        if display_name is not None:
            values["display_name"] = display_name.strip() or None
        if avatar_url is not None:
            values["avatar_url"] = avatar_url
        if not values:
            return profile
        return await self._write(profile, values)

    async def update_theme(self, *, theme: str | None = None, accent_color: str | None = None) -> ProfileRead:
        profile = self._require_profile()
        if theme is not None and theme not in _THEMES:
            raise ValidationError(f"Unknown theme '{theme}'")
        if accent_color is not None and not _ACCENT_RE.match(accent_color):
            raise ValidationError("Accent colour must look like #rrggbb")
        settings = {**DEFAULT_THEME_SETTINGS, **profile.theme_settings}
        if theme is not None:
            settings["theme"] = theme
        if accent_color is not None:
            settings["accentColor"] = accent_color
        return await self._write(profile, {"theme_settings": settings})

    async def _write(self, profile: ProfileRead, values: dict[str, Any]) -> ProfileRead:
        try:
            rows = await self._store.update(PROFILES_TABLE, values, where={"id": profile.id})
        except StoreConflictError as exc:
            raise ValidationError("Username is already taken") from exc
        if not rows:
            raise NotFoundError("Profile no longer exists")
        self._profile = ProfileRead.model_validate(rows[0])
        await self._listeners.notify_async(self._profile)
        return self._profile


__all__ = ["IdentityCache", "validate_username"]
