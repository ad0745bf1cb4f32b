"""Route pushed row changes to the engine that owns the table."""
from __future__ import annotations

import logging
from uuid import UUID

from ..constants import FRIEND_EDGES_TABLE, MESSAGES_TABLE
from ..schemas import RealtimeEvent, TopicFilter
from .errors import SyncError
from .friend_graph import FriendGraphEngine
from .message_stream import MessageStreamReconciler
from .ports import EventHandler, RealtimeChannel, Subscription

logger = logging.getLogger(__name__)


def friend_edge_topics(user_id: UUID) -> tuple[TopicFilter, TopicFilter]:
    value = str(user_id)
    return (
        TopicFilter(table=FRIEND_EDGES_TABLE, column="requester_id", value=value),
        TopicFilter(table=FRIEND_EDGES_TABLE, column="recipient_id", value=value),
    )


def group_topic(group_id: UUID) -> TopicFilter:
    return TopicFilter(table=MESSAGES_TABLE, column="group_id", value=str(group_id))


class RealtimeEventRouter:
    """Keep exactly one subscription per needed topic filter and demultiplex its events.

    Duplicate and late deliveries are harmless because both engines apply
    changes by id. After a reconnect every topic is subscribed again and a
    full reload closes whatever gap the outage left.
    """

    def __init__(
        self,
        channel: RealtimeChannel,
        friends: FriendGraphEngine,
        messages: MessageStreamReconciler,
    ) -> None:
        self._channel = channel
        self._friends = friends
        self._messages = messages
        self._subscriptions: dict[TopicFilter, Subscription] = {}
        self._friend_user: UUID | None = None
        self._groups: set[UUID] = set()
        self._remove_reconnect = channel.on_reconnect(self.handle_reconnect)

    @property
    def topics(self) -> list[TopicFilter]:
        return list(self._subscriptions)

    @property
    def watched_groups(self) -> set[UUID]:
        return set(self._groups)

    async def watch_friend_edges(self, user_id: UUID) -> None:
        if self._friend_user is not None and self._friend_user != user_id:
            await self.unwatch_friend_edges()
        self._friend_user = user_id
        for topic in friend_edge_topics(user_id):
            await self._subscribe(topic)

    async def unwatch_friend_edges(self) -> None:
        if self._friend_user is None:
            return
        topics = friend_edge_topics(self._friend_user)
        self._friend_user = None
        for topic in topics:
            await self._unsubscribe(topic)

    async def watch_group(self, group_id: UUID) -> None:
        self._groups.add(group_id)
        await self._subscribe(group_topic(group_id))

    async def unwatch_group(self, group_id: UUID) -> None:
        # Drop the group first so a delivery racing the unsubscribe is discarded.
        self._groups.discard(group_id)
        await self._unsubscribe(group_topic(group_id))

    async def _subscribe(self, topic: TopicFilter) -> None:
        current = self._subscriptions.get(topic)
        if current is not None and current.active:
            return
        self._subscriptions[topic] = await self._channel.subscribe(topic, self._handler_for(topic))
        logger.info("Subscribed to %s", topic)

    async def _unsubscribe(self, topic: TopicFilter) -> None:
        subscription = self._subscriptions.pop(topic, None)
        if subscription is None:
            return
        await subscription.unsubscribe()
        logger.info("Unsubscribed from %s", topic)

    def _handler_for(self, topic: TopicFilter) -> EventHandler:
        def _handle(event: RealtimeEvent) -> None:
            subscription = self._subscriptions.get(topic)
            if subscription is None or not subscription.active:
                return
            self.dispatch(event)

        return _handle

    def dispatch(self, event: RealtimeEvent) -> None:
        if event.table == FRIEND_EDGES_TABLE:
            self._friends.apply_event(event)
        elif event.table == MESSAGES_TABLE:
            raw_group = event.row.get("group_id")
            if raw_group is None or UUID(str(raw_group)) not in self._groups:
                logger.debug("Dropping message event for unwatched group %s", raw_group)
                return
            self._messages.apply_event(event)
        else:
            logger.debug("No handler for %s events on %s", event.operation, event.table)

    async def handle_reconnect(self) -> None:
        """Resubscribe every topic, then reload state to cover missed events."""

        topics = list(self._subscriptions)
        self._subscriptions.clear()
        for topic in topics:
            await self._subscribe(topic)
        logger.info("Resubscribed %d topics after reconnect", len(topics))

        if self._friend_user is not None:
            try:
                await self._friends.refresh()
            except SyncError:
                logger.exception("Friend edge reload after reconnect failed")
        for group_id in list(self._groups):
            try:
                await self._messages.load_history(group_id)
            except SyncError:
                logger.exception("History reload for group %s after reconnect failed", group_id)

    async def reset(self) -> None:
        """Drop every subscription, e.g. on sign-out."""

        self._groups.clear()
        self._friend_user = None
        for topic in list(self._subscriptions):
            await self._unsubscribe(topic)

    async def close(self) -> None:
        self._remove_reconnect()
        await self.reset()


__all__ = ["RealtimeEventRouter", "friend_edge_topics", "group_topic"]
