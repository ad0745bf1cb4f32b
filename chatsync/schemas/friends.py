"""Schemas for friend edges."""
from __future__ import annotations

from enum import Enum
from typing import Literal
from uuid import UUID

from .base import RowModel, UtcDatetime

EdgeStatus = Literal["pending", "accepted"]


class RespondAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


class FriendEdgeRead(RowModel):
    id: UUID
    requester_id: UUID
    recipient_id: UUID
    status: EdgeStatus
    created_at: UtcDatetime

    def involves(self, user_id: UUID) -> bool:
        return user_id in (self.requester_id, self.recipient_id)

    def counterpart(self, user_id: UUID) -> UUID:
        return self.recipient_id if self.requester_id == user_id else self.requester_id


__all__ = ["EdgeStatus", "FriendEdgeRead", "RespondAction"]
