"""Schemas for groups and memberships."""
from __future__ import annotations

from enum import Enum
from uuid import UUID

from .base import RowModel, UtcDatetime
from .profiles import ProfileRead


class GroupRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"

    @property
    def has_badge(self) -> bool:
        return self in (GroupRole.OWNER, GroupRole.ADMIN)


class GroupRead(RowModel):
    id: UUID
    name: str
    owner_id: UUID
    created_at: UtcDatetime


class MembershipRead(RowModel):
    group_id: UUID
    user_id: UUID
    role: GroupRole
    joined_at: UtcDatetime | None = None


class GroupView(RowModel):
    """A group as seen by one member."""

    group: GroupRead
    role: GroupRole

    @property
    def id(self) -> UUID:
        return self.group.id

    @property
    def name(self) -> str:
        return self.group.name


class GroupMember(RowModel):
    profile: ProfileRead
    role: GroupRole


__all__ = ["GroupMember", "GroupRead", "GroupRole", "GroupView", "MembershipRead"]
