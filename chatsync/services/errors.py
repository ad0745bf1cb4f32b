"""Error taxonomy raised by the synchronization core.

Every error is scoped to the operation that raised it; none of them leaves
in-memory state partially updated.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from ..schemas import GroupRead
    from .friend_graph import PairState


class SyncError(RuntimeError):
    """Base class for failures surfaced by the core."""


class ValidationError(SyncError):
    """Malformed input; the caller should correct it and try again."""


class SelfReferenceError(SyncError):
    """A user tried to befriend themselves."""


class DuplicateEdgeError(SyncError):
    """An edge already exists for the pair, in either direction."""

    def __init__(self, message: str, *, state: "PairState") -> None:
        super().__init__(message)
        self.state = state


class InvalidStateError(SyncError):
    """The entity moved on before this call landed; callers may treat it as a no-op."""


class NotFoundError(SyncError):
    """A referenced entity does not exist."""


class StoreError(SyncError):
    """The record store failed; transient, retry is a caller decision."""


class StoreConflictError(StoreError):
    """A write violated a uniqueness constraint."""


class UploadError(SyncError):
    """Uploading an attachment to the object store failed."""


class PartialCreateError(SyncError):
    """The group row exists but its owner membership could not be written."""

    def __init__(self, message: str, *, group: "GroupRead", cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.group = group
        self.cause = cause


__all__ = [
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
]
