"""In-process realtime channel fed by committed record store writes."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

from ..schemas import Operation, RealtimeEvent, TopicFilter
from .ports import EventHandler

logger = logging.getLogger(__name__)


class FeedSubscription:
    """Handle returned by :meth:`ChangeFeed.subscribe`."""

    def __init__(self, feed: "ChangeFeed", topic: TopicFilter, handler: EventHandler) -> None:
        self._feed = feed
        self.topic = topic
        self.handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def _deactivate(self) -> None:
        self._active = False

    async def unsubscribe(self) -> None:
        await self._feed._remove(self)


class ChangeFeed:
    """Fan out row changes to subscribers whose topic filter matches the row.

    Delivery is scheduled on the event loop rather than run inside the
    writer's call, so a writer never observes its own push synchronously.
    A subscription that is cancelled before a queued delivery runs does not
    receive it.
    """

    def __init__(self) -> None:
        self._channels: dict[TopicFilter, set[FeedSubscription]] = {}
        self._reconnect_listeners: list[Callable[[], Awaitable[None]]] = []
        self._pending: set[asyncio.Task[None]] = set()
        self._lock = asyncio.Lock()

    async def subscribe(self, topic: TopicFilter, on_event: EventHandler) -> FeedSubscription:
        subscription = FeedSubscription(self, topic, on_event)
        async with self._lock:
            self._channels.setdefault(topic, set()).add(subscription)
        logger.debug("Subscribed to %s", topic)
        return subscription

    async def _remove(self, subscription: FeedSubscription) -> None:
        subscription._deactivate()
        async with self._lock:
            group = self._channels.get(subscription.topic)
            if group is None:
                return
            group.discard(subscription)
            if not group:
                self._channels.pop(subscription.topic, None)
        logger.debug("Unsubscribed from %s", subscription.topic)

    def on_reconnect(self, callback: Callable[[], Awaitable[None]]) -> Callable[[], None]:
        self._reconnect_listeners.append(callback)

        def _remove() -> None:
            if callback in self._reconnect_listeners:
                self._reconnect_listeners.remove(callback)

        return _remove

    async def publish(self, table: str, operation: Operation, row: dict[str, Any]) -> None:
        event = RealtimeEvent(table=table, operation=operation, row=row)
        async with self._lock:
            targets = [
                subscription
                for topic, group in self._channels.items()
                if topic.matches(table, row)
                for subscription in group
            ]
        for subscription in targets:
            task = asyncio.create_task(self._deliver(subscription, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, subscription: FeedSubscription, event: RealtimeEvent) -> None:
        if not subscription.active:
            return
        try:
            result = subscription.handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Realtime handler for %s failed", subscription.topic)

    async def drain(self) -> None:
        """Wait until every scheduled delivery has run."""

        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def reconnect(self) -> None:
        """Simulate a dropped connection: every subscription is lost, then listeners resubscribe."""

        async with self._lock:
            subscriptions = [sub for group in self._channels.values() for sub in group]
            self._channels.clear()
        for subscription in subscriptions:
            subscription._deactivate()
        logger.info("Realtime channel reconnected, %d subscriptions dropped", len(subscriptions))
        for callback in list(self._reconnect_listeners):
            await callback()

    def subscriber_count(self, topic: TopicFilter | None = None) -> int:
        if topic is not None:
            return len(self._channels.get(topic, ()))
        return sum(len(group) for group in self._channels.values())


change_feed = ChangeFeed()


__all__ = ["ChangeFeed", "FeedSubscription", "change_feed"]
