"""Convenience exports for ORM models."""
from .friend_edge import FriendEdge, pair_key
from .group import Group
from .membership import Membership
from .message import Message
from .profile import Profile

__all__ = [
    "FriendEdge",
    "Group",
    "Membership",
    "Message",
    "Profile",
    "pair_key",
]
