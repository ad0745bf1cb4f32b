"""Friend request state machine and the derived friends list.

Each unordered pair of users moves through

    NONE -> PENDING(requester) -> ACCEPTED
    PENDING(requester) -> NONE            (rejection deletes the edge)

The engine keeps every edge touching the signed-in user, keyed by edge id.
Local mutation results and push events both go through ``_apply_edge`` and
``_forget``, so the two sources cannot disagree about representation.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable
from uuid import UUID

from pydantic import ValidationError as RowValidationError

from ..constants import FRIEND_EDGES_TABLE, PROFILES_TABLE
from ..models import pair_key
from ..schemas import FriendEdgeRead, ProfileRead, RealtimeEvent, RespondAction
from .errors import (
    DuplicateEdgeError,
    InvalidStateError,
    NotFoundError,
    SelfReferenceError,
    StoreConflictError,
    ValidationError,
)
from .listeners import ListenerSet
from .ports import RecordStore

logger = logging.getLogger(__name__)


class PairState(str, Enum):
    NONE = "none"
    PENDING_OUTGOING = "pending_outgoing"
    PENDING_INCOMING = "pending_incoming"
    ACCEPTED = "accepted"


_DUPLICATE_MESSAGES = {
    PairState.ACCEPTED: "You are already friends",
    PairState.PENDING_OUTGOING: "Friend request already pending",
    PairState.PENDING_INCOMING: "This user already sent you a friend request",
}


def pair_state_of(edge: FriendEdgeRead | None, viewer_id: UUID) -> PairState:
    if edge is None:
        return PairState.NONE
    if edge.status == "accepted":
        return PairState.ACCEPTED
    return PairState.PENDING_OUTGOING if edge.requester_id == viewer_id else PairState.PENDING_INCOMING


def _regresses(current: FriendEdgeRead | None, incoming: FriendEdgeRead) -> bool:
    """An accepted edge never goes back to pending."""
    return current is not None and current.status == "accepted" and incoming.status == "pending"


class FriendGraphEngine:
    """Own the friend edges touching one user."""

    def __init__(self, store: RecordStore, user_id: UUID | None = None) -> None:
        self._store = store
        self._user_id = user_id
        self._edges: dict[UUID, FriendEdgeRead] = {}
        # Edge ids are never reused, so a deleted id can be ignored forever.
        self._forgotten: set[UUID] = set()
        self._profiles: dict[UUID, ProfileRead] = {}
        self._refreshing = 0
        self._inflight: dict[UUID, FriendEdgeRead | None] = {}
        self._listeners = ListenerSet("friend graph")

    @property
    def user_id(self) -> UUID | None:
        return self._user_id

    def bind(self, user_id: UUID | None) -> None:
        """Switch to another signed-in user, dropping everything held for the previous one."""

        if user_id == self._user_id:
            return
        self._user_id = user_id
        self._edges.clear()
        self._forgotten.clear()
        self._profiles.clear()
        self._inflight.clear()
        self._listeners.notify()

    def add_listener(self, callback: Callable[[], Any]) -> Callable[[], None]:
        return self._listeners.add(callback)

    def _require_user(self) -> UUID:
        if self._user_id is None:
            raise ValidationError("No signed-in user")
        return self._user_id

    # ------------------------------------------------------------------ views

    @property
    def edges(self) -> list[FriendEdgeRead]:
        return sorted(self._edges.values(), key=lambda edge: (edge.created_at, str(edge.id)))

    def pending_incoming(self, user_id: UUID | None = None) -> list[FriendEdgeRead]:
        target = user_id or self._require_user()
        return [edge for edge in self.edges if edge.status == "pending" and edge.recipient_id == target]

    def pending_outgoing(self, user_id: UUID | None = None) -> list[FriendEdgeRead]:
        target = user_id or self._require_user()
        return [edge for edge in self.edges if edge.status == "pending" and edge.requester_id == target]

    def friend_ids(self, user_id: UUID | None = None) -> set[UUID]:
        target = user_id or self._require_user()
        return {edge.counterpart(target) for edge in self._edges.values() if edge.status == "accepted" and edge.involves(target)}

    def pair_state(self, other_id: UUID) -> PairState:
        viewer = self._require_user()
        for edge in self._edges.values():
            if edge.involves(other_id) and edge.involves(viewer):
                return pair_state_of(edge, viewer)
        return PairState.NONE

    async def friends(self, user_id: UUID | None = None) -> list[ProfileRead]:
        """Profiles reachable through accepted edges, ordered by username."""

        ids = self.friend_ids(user_id)
        missing = [friend_id for friend_id in ids if friend_id not in self._profiles]
        if missing:
            for row in await self._store.select(PROFILES_TABLE, where={"id": missing}):
                profile = ProfileRead.model_validate(row)
                self._profiles[profile.id] = profile
        found = [self._profiles[friend_id] for friend_id in ids if friend_id in self._profiles]
        return sorted(found, key=lambda profile: profile.username.lower())

    # -------------------------------------------------------------- mutations

    async def refresh(self) -> list[FriendEdgeRead]:
        """Reload every edge touching the user and replace local state with it."""

        user_id = self._require_user()
        self._refreshing += 1
        try:
            rows = await self._store.select(
                FRIEND_EDGES_TABLE,
                any_of=[{"requester_id": user_id}, {"recipient_id": user_id}],
                order_by=("created_at", "id"),
            )
        finally:
            self._refreshing -= 1
            inflight = dict(self._inflight)
            if not self._refreshing:
                self._inflight.clear()
        if user_id != self._user_id:
            logger.debug("Dropping friend refresh for %s after identity change", user_id)
            return self.edges

        fetched = {edge.id: edge for edge in (FriendEdgeRead.model_validate(row) for row in rows)}
        # Changes pushed while the read was in flight are newer than the read.
        for edge_id, change in inflight.items():
            if change is None:
                fetched.pop(edge_id, None)
            elif not _regresses(fetched.get(edge_id), change):
                fetched[edge_id] = change
        self._edges = fetched
        self._forgotten.difference_update(fetched)
        # Friend profiles are re-read after every refresh.
        self._profiles.clear()
        logger.info("Hydrated %d friend edges for %s", len(fetched), user_id)
        self._listeners.notify()
        return self.edges

    async def send_request(self, from_id: UUID, to_id: UUID) -> FriendEdgeRead:
        if from_id == to_id:
            raise SelfReferenceError("You cannot send a friend request to yourself")

        if not await self._store.select(PROFILES_TABLE, where={"id": to_id}, limit=1):
            raise NotFoundError("User not found")

        existing = await self._existing_edge(from_id, to_id)
        if existing is not None:
            state = pair_state_of(existing, from_id)
            raise DuplicateEdgeError(_DUPLICATE_MESSAGES[state], state=state)

        try:
            row = await self._store.insert(
                FRIEND_EDGES_TABLE,
                {
                    "requester_id": from_id,
                    "recipient_id": to_id,
                    "status": "pending",
                    "pair_key": pair_key(from_id, to_id),
                },
            )
        except StoreConflictError as exc:
            # Lost a race against a request for the same pair.
            existing = await self._existing_edge(from_id, to_id)
            state = pair_state_of(existing, from_id) if existing else PairState.PENDING_OUTGOING
            raise DuplicateEdgeError(_DUPLICATE_MESSAGES.get(state, "Friend request already exists"), state=state) from exc

        edge = FriendEdgeRead.model_validate(row)
        logger.info("Friend request %s sent from %s to %s", edge.id, from_id, to_id)
        self._apply_edge(edge)
        return edge

    async def send_request_by_username(self, from_id: UUID, username: str) -> FriendEdgeRead:
        candidate = (username or "").strip()
        if not candidate:
            raise ValidationError("Username required")
        profiles = await self._store.select(PROFILES_TABLE, where={"username": candidate}, limit=1)
        if not profiles:
            raise NotFoundError("User not found")
        recipient = ProfileRead.model_validate(profiles[0])
        self._profiles[recipient.id] = recipient
        return await self.send_request(from_id, recipient.id)

    async def respond(
        self,
        edge_id: UUID,
        action: RespondAction | str,
        *,
        actor_id: UUID | None = None,
    ) -> FriendEdgeRead | None:
        """Accept or reject a pending request addressed to ``actor_id``.

        Repeating a call that already succeeded returns quietly: accepting an
        accepted edge returns it, rejecting a missing edge returns ``None``.
        Losing the store-level race raises :class:`InvalidStateError`.
        """

        try:
            action = RespondAction(action)
        except ValueError as exc:
            raise ValidationError(f"Unknown friend request action '{action}'") from exc
        actor = actor_id or self._require_user()

        rows = await self._store.select(FRIEND_EDGES_TABLE, where={"id": edge_id}, limit=1)
        if not rows:
            if action is RespondAction.REJECT:
                self._forget(edge_id)
                return None
            raise InvalidStateError("Friend request no longer exists")

        edge = FriendEdgeRead.model_validate(rows[0])
        if edge.recipient_id != actor:
            raise InvalidStateError("Only the recipient can answer this friend request")

        if edge.status == "accepted":
            if action is RespondAction.ACCEPT:
                self._apply_edge(edge)
                return edge
            raise InvalidStateError("Friend request was already accepted")

        if action is RespondAction.ACCEPT:
            updated = await self._store.update(
                FRIEND_EDGES_TABLE,
                {"status": "accepted"},
                where={"id": edge_id, "status": "pending"},
            )
            if not updated:
                raise InvalidStateError("Friend request was answered concurrently")
            accepted = FriendEdgeRead.model_validate(updated[0])
            logger.info("Friend request %s accepted by %s", edge_id, actor)
            self._apply_edge(accepted)
            return accepted

        removed = await self._store.delete(FRIEND_EDGES_TABLE, where={"id": edge_id, "status": "pending"})
        if not removed:
            raise InvalidStateError("Friend request was answered concurrently")
        logger.info("Friend request %s rejected by %s", edge_id, actor)
        self._forget(edge_id)
        return None

    async def _existing_edge(self, a: UUID, b: UUID) -> FriendEdgeRead | None:
        rows = await self._store.select(
            FRIEND_EDGES_TABLE,
            any_of=[
                {"requester_id": a, "recipient_id": b},
                {"requester_id": b, "recipient_id": a},
            ],
            limit=1,
        )
        return FriendEdgeRead.model_validate(rows[0]) if rows else None

    # ----------------------------------------------------------- reconciliation

    def apply_event(self, event: RealtimeEvent) -> None:
        """Apply a pushed ``friend_edges`` change; safe to replay."""

        if event.table != FRIEND_EDGES_TABLE:
            return
        if event.operation == "delete":
            raw_id = event.row.get("id")
            if raw_id is None:
                logger.warning("Friend edge delete event without an id")
                return
            self._forget(UUID(str(raw_id)))
            return
        try:
            edge = FriendEdgeRead.model_validate(event.row)
        except RowValidationError:
            logger.warning("Ignoring malformed friend edge event: %s", event.row)
            return
        self._apply_edge(edge)

    def _apply_edge(self, edge: FriendEdgeRead) -> None:
        if self._user_id is None or not edge.involves(self._user_id):
            return
        if edge.id in self._forgotten:
            logger.debug("Ignoring stale change for deleted friend edge %s", edge.id)
            return
        current = self._edges.get(edge.id)
        if _regresses(current, edge):
            logger.debug("Ignoring out-of-order pending state for accepted edge %s", edge.id)
            return
        if self._refreshing:
            self._inflight[edge.id] = edge
        if current == edge:
            return
        self._edges[edge.id] = edge
        self._listeners.notify()

    def _forget(self, edge_id: UUID) -> None:
        self._forgotten.add(edge_id)
        if self._refreshing:
            self._inflight[edge_id] = None
        if self._edges.pop(edge_id, None) is not None:
            self._listeners.notify()


__all__ = ["FriendGraphEngine", "PairState", "pair_state_of"]
