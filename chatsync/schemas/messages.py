"""Schemas for group messages."""
from __future__ import annotations

from uuid import UUID

from .base import RowModel, UtcDatetime


class MessageRead(RowModel):
    id: UUID
    group_id: UUID
    sender_id: UUID
    content: str | None = None
    attachment_url: str | None = None
    created_at: UtcDatetime

    @property
    def sort_key(self) -> tuple:
        """Total order of a group's log: creation time, then id."""
        return (self.created_at, str(self.id))


__all__ = ["MessageRead"]
