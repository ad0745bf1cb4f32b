"""Two signed-in clients sharing one store and change feed."""
from __future__ import annotations

from pathlib import Path

import pytest

from chatsync.config import get_settings
from chatsync.schemas import RespondAction
from chatsync.services import (
    LocalObjectStore,
    PairState,
    SyncClient,
    TokenAuthProvider,
    ValidationError,
)

from support import run


async def _signed_in(store, feed, profile, tmp_path: Path | None = None) -> SyncClient:
    auth = TokenAuthProvider()
    kwargs = {}
    if tmp_path is not None:
        kwargs = {
            "attachments": LocalObjectStore(tmp_path, "attachments"),
            "avatars": LocalObjectStore(tmp_path, "avatars"),
        }
    client = SyncClient(auth, store, feed, **kwargs)
    await client.start()
    await auth.sign_in(auth.issue_token(profile.id))
    return client


def test_friend_request_flow_is_pushed_to_both_clients(store, feed, profile_factory):
    alice = profile_factory("alice")
    bob = profile_factory("bob")

    async def scenario():
        alice_client = await _signed_in(store, feed, alice)
        bob_client = await _signed_in(store, feed, bob)

        edge = await alice_client.send_friend_request("bob")
        await feed.drain()
        assert [incoming.id for incoming in bob_client.friends.pending_incoming()] == [edge.id]
        assert alice_client.friends.pair_state(bob.id) is PairState.PENDING_OUTGOING

        await bob_client.respond(edge.id, RespondAction.ACCEPT)
        await feed.drain()
        assert alice_client.friends.friend_ids() == {bob.id}
        assert bob_client.friends.friend_ids() == {alice.id}
        assert [profile.username for profile in await alice_client.friends.friends()] == ["bob"]

        await alice_client.stop()
        await bob_client.stop()
        assert feed.subscriber_count() == 0

    run(scenario())


def test_group_messages_reach_other_members(store, feed, profile_factory, add_member):
    alice = profile_factory("alice")
    bob = profile_factory("bob")

    async def scenario():
        alice_client = await _signed_in(store, feed, alice)
        bob_client = await _signed_in(store, feed, bob)

        view = await alice_client.create_group("Team")
        assert [group.id for group in alice_client.groups.groups] == [view.id]
        add_member(view.id, bob.id)
        await bob_client.groups.refresh()
        assert bob_client.groups.role_in(view.id).value == "member"

        await alice_client.open_group(view.id)
        first = await alice_client.send_message(view.id, "hello team")
        history = await bob_client.open_group(view.id)
        assert [message.id for message in history] == [first.id]

        reply = await bob_client.send_message(view.id, "hi alice")
        await feed.drain()
        assert [message.id for message in alice_client.messages.messages(view.id)] == [first.id, reply.id]
        assert [message.id for message in bob_client.messages.messages(view.id)] == [first.id, reply.id]

        await bob_client.close_group(view.id)
        late = await alice_client.send_message(view.id, "anyone there?")
        await feed.drain()
        assert bob_client.messages.messages(view.id) == ()
        assert alice_client.messages.messages(view.id)[-1].id == late.id

        await alice_client.stop()
        await bob_client.stop()

    run(scenario())


def test_sign_out_tears_down_every_subscription(store, feed, profile_factory):
    alice = profile_factory("alice")

    async def scenario():
        auth = TokenAuthProvider()
        client = SyncClient(auth, store, feed)
        await client.start()
        await auth.sign_in(auth.issue_token(alice.id))
        view = await client.create_group("Team")
        await client.open_group(view.id)
        assert feed.subscriber_count() == 3

        await auth.sign_out()
        assert feed.subscriber_count() == 0
        assert client.user_id is None
        assert client.messages.open_groups == []
        with pytest.raises(ValidationError):
            await client.send_message(view.id, "ghost")

    run(scenario())


def test_attachments_and_avatars(tmp_path: Path, store, feed, profile_factory):
    alice = profile_factory("alice")

    async def scenario():
        client = await _signed_in(store, feed, alice, tmp_path)
        view = await client.create_group("Team")
        await client.open_group(view.id)

        staged = await client.uploads.stage(b"%PDF-1.4", filename="plan.pdf")
        message = await client.send_attachment(view.id, staged, content="the plan")
        assert message.content == "the plan"
        assert message.attachment_url.endswith(".pdf")

        avatar = await client.uploads.stage(b"img", filename="me.png")
        profile = await client.update_avatar(avatar)
        assert profile.avatar_url == f"/media/avatars/{alice.id}/avatar.png"
        await client.stop()

    run(scenario())


def test_attachments_need_a_configured_store(store, feed, profile_factory):
    alice = profile_factory("alice")

    async def scenario():
        client = await _signed_in(store, feed, alice)
        view = await client.create_group("Team")
        with pytest.raises(ValidationError):
            await client.send_attachment(view.id, None)  # type: ignore[arg-type]
        await client.stop()

    run(scenario())


def test_configured_buckets_back_uploads(store, feed, profile_factory):
    alice = profile_factory("alice")

    async def scenario():
        auth = TokenAuthProvider()
        client = SyncClient.from_settings(auth, store, feed)
        await client.start()
        await auth.sign_in(auth.issue_token(alice.id))

        avatar = await client.uploads.stage(b"img", filename="me.png")
        profile = await client.update_avatar(avatar)
        assert profile.avatar_url == f"/media/avatars/{alice.id}/avatar.png"
        assert (Path(get_settings().media_root) / "avatars" / str(alice.id) / "avatar.png").read_bytes() == b"img"
        await client.stop()

    run(scenario())
