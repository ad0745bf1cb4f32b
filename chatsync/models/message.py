"""ORM model for group chat messages."""
from __future__ import annotations

import uuid

from sqlalchemy import Column, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID

from chatsync.database import Base
from .base import created_at_column


class Message(Base):
    __tablename__ = "messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id = Column(UUID(as_uuid=True), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=True)
    attachment_url = Column(String(1024), nullable=True)
    created_at = created_at_column()

    __table_args__ = (Index("ix_messages_group_order", "group_id", "created_at", "id"),)


__all__ = ["Message"]
