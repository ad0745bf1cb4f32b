"""ORM model for directed friend requests interpreted bidirectionally once accepted."""
from __future__ import annotations

import uuid

from sqlalchemy import Column, Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from chatsync.database import Base
from .base import created_at_column


def pair_key(a: uuid.UUID, b: uuid.UUID) -> str:
    """Direction-free key for the unordered pair ``{a, b}``."""

    first, second = (a, b) if str(a) < str(b) else (b, a)
    return f"{first}:{second}"


class FriendEdge(Base):
    __tablename__ = "friend_edges"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    requester_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum("pending", "accepted", name="friend_edge_status"), nullable=False, default="pending")
    pair_key = Column(String(80), nullable=False)
    created_at = created_at_column()

    __table_args__ = (UniqueConstraint("pair_key", name="uq_friend_edge_pair"),)


__all__ = ["FriendEdge", "pair_key"]
