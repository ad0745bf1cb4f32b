"""Convenience exports for the synchronization services."""
from .attachment_service import AttachmentPipeline, PendingUpload
from .auth_provider import InvalidTokenError, TokenAuthProvider
from .change_feed import ChangeFeed, FeedSubscription, change_feed
from .errors import (
    DuplicateEdgeError,
    InvalidStateError,
    NotFoundError,
    PartialCreateError,
    SelfReferenceError,
    StoreConflictError,
    StoreError,
    SyncError,
    UploadError,
    ValidationError,
)
from .event_router import RealtimeEventRouter, friend_edge_topics, group_topic
from .friend_graph import FriendGraphEngine, PairState
from .group_service import GroupMembershipManager
from .identity_cache import IdentityCache, validate_username
from .message_stream import MessageStreamReconciler
from .object_store import LocalObjectStore, SpacesObjectStore, build_object_store
from .ports import AuthProvider, AuthSession, ObjectStore, RealtimeChannel, RecordStore
from .record_store import SqlRecordStore
from .sync_client import SyncClient

__all__ = [
    "AttachmentPipeline",
    "PendingUpload",
    "InvalidTokenError",
    "TokenAuthProvider",
    "ChangeFeed",
    "FeedSubscription",
    "change_feed",
    "SyncError",
    "ValidationError",
    "SelfReferenceError",
    "DuplicateEdgeError",
    "InvalidStateError",
    "NotFoundError",
    "StoreError",
    "StoreConflictError",
    "UploadError",
    "PartialCreateError",
    "RealtimeEventRouter",
    "friend_edge_topics",
    "group_topic",
    "FriendGraphEngine",
    "PairState",
    "GroupMembershipManager",
    "IdentityCache",
    "validate_username",
    "MessageStreamReconciler",
    "LocalObjectStore",
    "SpacesObjectStore",
    "build_object_store",
    "AuthProvider",
    "AuthSession",
    "ObjectStore",
    "RealtimeChannel",
    "RecordStore",
    "SqlRecordStore",
    "SyncClient",
]
