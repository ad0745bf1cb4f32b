"""ORM model for user profiles."""
from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from chatsync.database import Base
from .base import created_at_column, utcnow


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String(20), unique=True, nullable=False, index=True)
    display_name = Column(String(120), nullable=True)
    avatar_url = Column(String(512), nullable=True)
    theme_settings = Column(JSON, nullable=False, default=dict)
    created_at = created_at_column()
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)


__all__ = ["Profile"]
