"""Ordering, de-duplication and history loading of group message logs."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from chatsync.schemas import AttachmentRef, MessageRead, RealtimeEvent
from chatsync.services import (
    FriendGraphEngine,
    GroupMembershipManager,
    MessageStreamReconciler,
    RealtimeEventRouter,
    SqlRecordStore,
    ValidationError,
)

from support import HookedStore, run

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _message(group_id: UUID, offset: int, content: str, message_id: UUID | None = None) -> MessageRead:
    return MessageRead(
        id=message_id or uuid4(),
        group_id=group_id,
        sender_id=uuid4(),
        content=content,
        created_at=T0 + timedelta(seconds=offset),
    )


def test_replayed_message_is_kept_once():
    group_id = uuid4()
    stream = MessageStreamReconciler(store=None)  # type: ignore[arg-type]
    stream.open(group_id)
    message = _message(group_id, 0, "hello")

    assert stream.apply_incoming(message) is True
    assert stream.apply_incoming(message) is False
    assert stream.messages(group_id) == (message,)


def test_out_of_order_arrivals_are_sorted():
    group_id = uuid4()
    stream = MessageStreamReconciler(store=None)  # type: ignore[arg-type]
    stream.open(group_id)
    later = _message(group_id, 2, "second")
    earlier = _message(group_id, 1, "first")

    stream.apply_incoming(later)
    stream.apply_incoming(earlier)
    assert [message.content for message in stream.messages(group_id)] == ["first", "second"]


def test_equal_timestamps_are_ordered_by_id():
    group_id = uuid4()
    stream = MessageStreamReconciler(store=None)  # type: ignore[arg-type]
    stream.open(group_id)
    low = _message(group_id, 0, "low", UUID("00000000-0000-0000-0000-000000000001"))
    high = _message(group_id, 0, "high", UUID("ffffffff-0000-0000-0000-000000000000"))

    stream.apply_incoming(high)
    stream.apply_incoming(low)
    assert [message.content for message in stream.messages(group_id)] == ["low", "high"]


def test_closed_group_drops_incoming_messages():
    group_id = uuid4()
    stream = MessageStreamReconciler(store=None)  # type: ignore[arg-type]
    assert stream.apply_incoming(_message(group_id, 0, "lost")) is False
    stream.open(group_id)
    stream.apply_incoming(_message(group_id, 0, "kept"))
    stream.close(group_id)
    assert stream.messages(group_id) == ()
    assert not stream.is_open(group_id)


def test_only_insert_events_are_applied():
    group_id = uuid4()
    stream = MessageStreamReconciler(store=None)  # type: ignore[arg-type]
    stream.open(group_id)
    message = _message(group_id, 0, "hi")
    row = message.model_dump()

    assert stream.apply_event(RealtimeEvent(table="messages", operation="update", row=row)) is False
    assert stream.apply_event(RealtimeEvent(table="messages", operation="delete", row=row)) is False
    assert stream.apply_event(RealtimeEvent(table="messages", operation="insert", row={"id": "broken"})) is False
    assert stream.apply_event(RealtimeEvent(table="messages", operation="insert", row=row)) is True
    assert stream.messages(group_id) == (message,)


def test_send_shows_message_without_a_push(profile_factory):
    alice = profile_factory("alice")

    async def scenario():
        store = SqlRecordStore()
        group = await GroupMembershipManager(store, alice.id).create_group("Team", alice.id)
        stream = MessageStreamReconciler(store)
        stream.open(group.id)

        sent = await stream.send(group.id, alice.id, content="hello")
        assert stream.messages(group.id) == (sent,)
        assert sent.content == "hello"
        assert sent.attachment_url is None

        ref = AttachmentRef(key="k.png", url="/media/attachments/k.png", content_type="image/png", size=3)
        picture = await stream.send(group.id, alice.id, attachment_ref=ref)
        assert picture.attachment_url == ref.url
        assert picture.content is None
        assert [message.id for message in stream.messages(group.id)] == [sent.id, picture.id]

    run(scenario())


def test_send_requires_text_or_attachment(store, profile_factory):
    alice = profile_factory("alice")

    async def scenario():
        group = await GroupMembershipManager(store, alice.id).create_group("Team", alice.id)
        stream = MessageStreamReconciler(store)
        stream.open(group.id)
        for content in (None, "", "   \n"):
            with pytest.raises(ValidationError):
                await stream.send(group.id, alice.id, content=content)
        with pytest.raises(ValidationError):
            await stream.send(group.id, alice.id, attachment_ref="  ")
        assert stream.messages(group.id) == ()
        assert await store.select("messages") == []

    run(scenario())


def test_local_send_and_its_push_leave_one_copy(store, feed, profile_factory):
    alice = profile_factory("alice")

    async def scenario():
        group = await GroupMembershipManager(store, alice.id).create_group("Team", alice.id)
        stream = MessageStreamReconciler(store)
        router = RealtimeEventRouter(feed, FriendGraphEngine(store, alice.id), stream)
        stream.open(group.id)
        await router.watch_group(group.id)

        sent = await stream.send(group.id, alice.id, content="once")
        await feed.drain()
        assert stream.messages(group.id) == (sent,)
        await router.close()

    run(scenario())


def test_load_history_replaces_the_log_in_order(store, profile_factory):
    alice = profile_factory("alice")

    async def scenario():
        group = await GroupMembershipManager(store, alice.id).create_group("Team", alice.id)
        writer = MessageStreamReconciler(store)
        sent = [await writer.send(group.id, alice.id, content=f"m{index}") for index in range(3)]

        reader = MessageStreamReconciler(store)
        history = await reader.load_history(group.id)
        assert [message.id for message in history] == [message.id for message in sent]
        assert reader.is_open(group.id)

        again = await reader.load_history(group.id)
        assert again == history

    run(scenario())


def test_messages_arriving_during_history_load_are_merged(store, profile_factory):
    alice = profile_factory("alice")

    async def scenario():
        group = await GroupMembershipManager(store, alice.id).create_group("Team", alice.id)
        stored = await MessageStreamReconciler(store).send(group.id, alice.id, content="stored")
        pushed = _message(group.id, 3600 * 24 * 365 * 10, "pushed mid-load")

        stream = MessageStreamReconciler(HookedStore(store, "messages", lambda: stream.apply_incoming(pushed)))
        history = await stream.load_history(group.id)
        assert [message.id for message in history] == [stored.id, pushed.id]

    run(scenario())


def test_history_for_a_group_closed_mid_load_is_dropped(store, profile_factory):
    alice = profile_factory("alice")

    async def scenario():
        group = await GroupMembershipManager(store, alice.id).create_group("Team", alice.id)
        await MessageStreamReconciler(store).send(group.id, alice.id, content="stored")

        stream = MessageStreamReconciler(HookedStore(store, "messages", lambda: stream.close(group.id)))
        assert await stream.load_history(group.id) == ()
        assert not stream.is_open(group.id)

    run(scenario())


def test_listeners_hear_each_new_message_once():
    group_id = uuid4()
    stream = MessageStreamReconciler(store=None)  # type: ignore[arg-type]
    stream.open(group_id)
    heard = []
    remove = stream.add_listener(lambda gid, message: heard.append((gid, message)))

    message = _message(group_id, 0, "ping")
    stream.apply_incoming(message)
    stream.apply_incoming(message)
    remove()
    stream.apply_incoming(_message(group_id, 1, "unheard"))

    assert heard == [(group_id, message)]
