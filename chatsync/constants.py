"""Project-wide constant values."""
from __future__ import annotations

USERNAME_PATTERN = r"^[A-Za-z0-9_]{3,20}$"

GROUP_NAME_MAX_LENGTH = 120

DEFAULT_THEME_SETTINGS = {"theme": "dark", "accentColor": "#6366f1"}

# Table names shared by the record store, the change feed and the event router
PROFILES_TABLE = "profiles"
FRIEND_EDGES_TABLE = "friend_edges"
GROUPS_TABLE = "groups"
MEMBERSHIPS_TABLE = "memberships"
MESSAGES_TABLE = "messages"

__all__ = [
    "USERNAME_PATTERN",
    "GROUP_NAME_MAX_LENGTH",
    "DEFAULT_THEME_SETTINGS",
    "PROFILES_TABLE",
    "FRIEND_EDGES_TABLE",
    "GROUPS_TABLE",
    "MEMBERSHIPS_TABLE",
    "MESSAGES_TABLE",
]
