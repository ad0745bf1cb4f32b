"""WebSocket bridge that streams change-feed events to remote clients."""
from __future__ import annotations

import json
import logging
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PayloadValidationError

from ..constants import FRIEND_EDGES_TABLE, MEMBERSHIPS_TABLE, MESSAGES_TABLE
from ..schemas import RealtimeEvent, TopicFilter
from ..services.auth_provider import InvalidTokenError, TokenAuthProvider
from ..services.change_feed import FeedSubscription, change_feed
from ..services.record_store import SqlRecordStore

router = APIRouter(prefix="/realtime", tags=["realtime"])
logger = logging.getLogger(__name__)

record_store = SqlRecordStore(feed=change_feed)
token_verifier = TokenAuthProvider()

_FRIEND_EDGE_COLUMNS = {"requester_id", "recipient_id"}


async def _may_subscribe(user_id: UUID, topic: TopicFilter) -> bool:
    if topic.table == FRIEND_EDGES_TABLE:
        return topic.column in _FRIEND_EDGE_COLUMNS and topic.value == str(user_id)
    if topic.table == MESSAGES_TABLE and topic.column == "group_id":
        try:
            group_id = UUID(topic.value)
        except ValueError:
            return False
        rows = await record_store.select(MEMBERSHIPS_TABLE, where={"group_id": group_id, "user_id": user_id}, limit=1)
        return bool(rows)
    return False


def _serialize(event: RealtimeEvent) -> str:
    return json.dumps({"type": "event", **event.model_dump()}, default=str)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: str = Query(...)) -> None:
    """Relay row changes for the topics the client subscribes to."""

    try:
        session = token_verifier.verify(token)
    except InvalidTokenError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    subscriptions: dict[TopicFilter, FeedSubscription] = {}
    logger.info("Realtime socket connected for %s from %s", session.user_id, websocket.client)

    async def _forward(event: RealtimeEvent) -> None:
        await websocket.send_text(_serialize(event))

    try:
        while True:
            try:
                raw = await websocket.receive_text()
            except WebSocketDisconnect:
                break

            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                payload = {"type": raw}
            if not isinstance(payload, dict):
                payload = {"type": ""}

            message_type = str(payload.get("type") or "").lower()
            if message_type == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
                continue
            if message_type not in {"subscribe", "unsubscribe"}:
                continue

            try:
                topic = TopicFilter.model_validate({key: payload.get(key) for key in ("table", "column", "value")})
            except PayloadValidationError:
                await websocket.send_text(json.dumps({"type": "error", "detail": "Invalid topic"}))
                continue

            if message_type == "unsubscribe":
                subscription = subscriptions.pop(topic, None)
                if subscription is not None:
                    await subscription.unsubscribe()
                await websocket.send_text(json.dumps({"type": "unsubscribed", "topic": str(topic)}))
                continue

            if topic in subscriptions:
                await websocket.send_text(json.dumps({"type": "subscribed", "topic": str(topic)}))
                continue
            if not await _may_subscribe(session.user_id, topic):
                await websocket.send_text(json.dumps({"type": "error", "detail": "Topic not allowed", "topic": str(topic)}))
                continue
            subscriptions[topic] = await change_feed.subscribe(topic, _forward)
            await websocket.send_text(json.dumps({"type": "subscribed", "topic": str(topic)}))
    finally:
        for subscription in subscriptions.values():
            await subscription.unsubscribe()
        logger.info("Realtime socket disconnected for %s", session.user_id)


__all__ = ["router", "record_store"]
