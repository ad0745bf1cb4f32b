"""ORM model linking profiles to groups with a role."""
from __future__ import annotations

from sqlalchemy import Column, Enum, ForeignKey
from sqlalchemy.dialects.postgresql import UUID

from chatsync.database import Base
from .base import created_at_column


class Membership(Base):
    __tablename__ = "memberships"

    group_id = Column(UUID(as_uuid=True), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True, index=True)
    role = Column(Enum("owner", "admin", "member", name="membership_role"), nullable=False, default="member")
    joined_at = created_at_column()


__all__ = ["Membership"]
