"""Contracts of the collaborators consumed by the synchronization core."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence
from uuid import UUID

from ..schemas import RealtimeEvent, TopicFilter

Row = dict[str, Any]
Filter = Mapping[str, Any]
EventHandler = Callable[[RealtimeEvent], Any]


@dataclass(frozen=True)
class AuthSession:
    user_id: UUID
    access_token: str
    expires_at: datetime | None = None


SessionCallback = Callable[[AuthSession | None], Awaitable[None] | None]


class AuthProvider(Protocol):
    async def get_session(self) -> AuthSession | None: ...

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]: ...


class RecordStore(Protocol):
    """Relational access to the five sync tables.

    ``where`` entries are ANDed; ``any_of`` entries are ORed together and then
    ANDed with ``where``. A list or tuple value means ``IN``. ``update`` and
    ``delete`` return the affected rows, so adding the expected prior value
    to ``where`` turns them into conditional writes.
    """

    async def select(
        self,
        table: str,
        *,
        where: Filter | None = None,
        any_of: Sequence[Filter] | None = None,
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[Row]: ...

    async def insert(self, table: str, values: Filter) -> Row: ...

    async def update(self, table: str, values: Filter, *, where: Filter) -> list[Row]: ...

    async def delete(self, table: str, *, where: Filter) -> list[Row]: ...


class Subscription(Protocol):
    topic: TopicFilter

    @property
    def active(self) -> bool: ...

    async def unsubscribe(self) -> None: ...


class RealtimeChannel(Protocol):
    async def subscribe(self, topic: TopicFilter, on_event: EventHandler) -> Subscription: ...

    def on_reconnect(self, callback: Callable[[], Awaitable[None]]) -> Callable[[], None]: ...


class ObjectStore(Protocol):
    async def upload(self, key: str, data: bytes, *, content_type: str, overwrite: bool = False) -> str: ...

    def public_url(self, key: str) -> str: ...


__all__ = [
    "AuthProvider",
    "AuthSession",
    "EventHandler",
    "Filter",
    "ObjectStore",
    "RealtimeChannel",
    "RecordStore",
    "Row",
    "SessionCallback",
    "Subscription",
]
