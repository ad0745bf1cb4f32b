"""Per-group ordered message logs merged from local sends and pushed inserts."""
from __future__ import annotations

import logging
from bisect import bisect_right
from typing import Any, Callable
from uuid import UUID

from pydantic import ValidationError as RowValidationError

from ..constants import MESSAGES_TABLE
from ..schemas import AttachmentRef, MessageRead, RealtimeEvent
from .errors import ValidationError
from .listeners import ListenerSet
from .ports import RecordStore

logger = logging.getLogger(__name__)


class _GroupLog:
    """Messages of one group sorted by ``(created_at, id)`` with an id index."""

    def __init__(self) -> None:
        self.messages: list[MessageRead] = []
        self.keys: list[tuple] = []
        self.ids: set[UUID] = set()
        self.loading = 0
        self.inflight: dict[UUID, MessageRead] = {}

    def insert(self, message: MessageRead) -> bool:
        if message.id in self.ids:
            return False
        key = message.sort_key
        position = bisect_right(self.keys, key)
        self.keys.insert(position, key)
        self.messages.insert(position, message)
        self.ids.add(message.id)
        return True

    def replace(self, messages: list[MessageRead]) -> None:
        self.messages = []
        self.keys = []
        self.ids = set()
        for message in sorted(messages, key=lambda item: item.sort_key):
            if message.id in self.ids:
                continue
            self.messages.append(message)
            self.keys.append(message.sort_key)
            self.ids.add(message.id)


class MessageStreamReconciler:
    """Own one ordered, de-duplicated log per open group."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store
        self._logs: dict[UUID, _GroupLog] = {}
        self._listeners = ListenerSet("message stream")

    def add_listener(self, callback: Callable[[UUID, MessageRead], Any]) -> Callable[[], None]:
        return self._listeners.add(callback)

    def open(self, group_id: UUID) -> None:
        self._logs.setdefault(group_id, _GroupLog())

    def close(self, group_id: UUID) -> None:
        if self._logs.pop(group_id, None) is not None:
            logger.debug("Discarded message log for group %s", group_id)

    def is_open(self, group_id: UUID) -> bool:
        return group_id in self._logs

    @property
    def open_groups(self) -> list[UUID]:
        return list(self._logs)

    def messages(self, group_id: UUID) -> tuple[MessageRead, ...]:
        log = self._logs.get(group_id)
        return tuple(log.messages) if log else ()

    async def load_history(self, group_id: UUID) -> tuple[MessageRead, ...]:
        """Fetch the whole history of ``group_id`` and make it the local log.

        Messages applied while the fetch is in flight are merged into the
        result. If the group is closed before the fetch returns, the result is
        dropped.
        """

        self.open(group_id)
        log = self._logs[group_id]
        log.loading += 1
        try:
            rows = await self._store.select(
                MESSAGES_TABLE,
                where={"group_id": group_id},
                order_by=("created_at", "id"),
            )
        finally:
            log.loading -= 1
            inflight = list(log.inflight.values())
            if not log.loading:
                log.inflight.clear()

        if self._logs.get(group_id) is not log:
            logger.debug("Group %s closed while loading history; dropping result", group_id)
            return ()

        log.replace([MessageRead.model_validate(row) for row in rows])
        for message in inflight:
            log.insert(message)
        logger.info("Loaded %d messages for group %s", len(log.messages), group_id)
        self._listeners.notify(group_id, None)
        return tuple(log.messages)

    def apply_incoming(self, message: MessageRead) -> bool:
        """Merge ``message`` into its group's log; returns False when it was already there."""

        log = self._logs.get(message.group_id)
        if log is None:
            logger.debug("Dropping message %s for closed group %s", message.id, message.group_id)
            return False
        if log.loading:
            log.inflight.setdefault(message.id, message)
        if not log.insert(message):
            logger.debug("Duplicate message %s ignored", message.id)
            return False
        self._listeners.notify(message.group_id, message)
        return True

    def apply_event(self, event: RealtimeEvent) -> bool:
        if event.table != MESSAGES_TABLE:
            return False
        if event.operation != "insert":
            # Messages are immutable once created.
            logger.debug("Ignoring %s event for message %s", event.operation, event.row.get("id"))
            return False
        try:
            message = MessageRead.model_validate(event.row)
        except RowValidationError:
            logger.warning("Ignoring malformed message event: %s", event.row)
            return False
        return self.apply_incoming(message)

    async def send(
        self,
        group_id: UUID,
        sender_id: UUID,
        content: str | None = None,
        attachment_ref: AttachmentRef | str | None = None,
    ) -> MessageRead:
        """Persist a message and show it locally without waiting for its push."""

        text = content if content and content.strip() else None
        if isinstance(attachment_ref, AttachmentRef):
            attachment_ref = attachment_ref.url
        attachment = (attachment_ref or "").strip() or None
        if text is None and attachment is None:
            raise ValidationError("Message requires text or an attachment")

        row = await self._store.insert(
            MESSAGES_TABLE,
            {"group_id": group_id, "sender_id": sender_id, "content": text, "attachment_url": attachment},
        )
        message = MessageRead.model_validate(row)
        self.apply_incoming(message)
        return message


__all__ = ["MessageStreamReconciler"]
