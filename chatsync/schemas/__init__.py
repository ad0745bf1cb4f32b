"""Convenience exports for pydantic schemas."""
from .friends import EdgeStatus, FriendEdgeRead, RespondAction
from .groups import GroupMember, GroupRead, GroupRole, GroupView, MembershipRead
from .media import AttachmentRef
from .messages import MessageRead
from .profiles import ProfileRead
from .realtime import Operation, RealtimeEvent, TopicFilter

__all__ = [
    "AttachmentRef",
    "EdgeStatus",
    "FriendEdgeRead",
    "GroupMember",
    "GroupRead",
    "GroupRole",
    "GroupView",
    "MembershipRead",
    "MessageRead",
    "Operation",
    "ProfileRead",
    "RealtimeEvent",
    "RespondAction",
    "TopicFilter",
]
