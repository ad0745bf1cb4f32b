"""Wire the engines together for one signed-in client."""
from __future__ import annotations

import logging
from uuid import UUID

from ..config import get_settings
from ..schemas import AttachmentRef, FriendEdgeRead, GroupView, MessageRead, ProfileRead, RespondAction
from .attachment_service import AttachmentPipeline, PendingUpload
from .errors import ValidationError
from .event_router import RealtimeEventRouter
from .friend_graph import FriendGraphEngine
from .group_service import GroupMembershipManager
from .identity_cache import IdentityCache
from .message_stream import MessageStreamReconciler
from .object_store import build_object_store
from .ports import AuthProvider, ObjectStore, RealtimeChannel, RecordStore

logger = logging.getLogger(__name__)


class SyncClient:
    """Single owner of the friend graph, group list and open message logs.

    Identity changes drive everything else: signing in subscribes to the
    user's friend-edge topics before hydrating, so no push can fall between
    the read and the subscription; signing out tears every subscription down.
    """

    def __init__(
        self,
        auth: AuthProvider,
        store: RecordStore,
        channel: RealtimeChannel,
        *,
        attachments: ObjectStore | None = None,
        avatars: ObjectStore | None = None,
    ) -> None:
        self.identity = IdentityCache(auth, store)
        self.friends = FriendGraphEngine(store)
        self.groups = GroupMembershipManager(store)
        self.messages = MessageStreamReconciler(store)
        self.router = RealtimeEventRouter(channel, self.friends, self.messages)
        self.uploads = AttachmentPipeline(attachments, avatars=avatars) if attachments is not None else None
        self._active_user: UUID | None = None
        self.identity.add_listener(self._on_identity)

    @classmethod
    def from_settings(cls, auth: AuthProvider, store: RecordStore, channel: RealtimeChannel) -> "SyncClient":
        """Build a client whose uploads go to the configured attachment and avatar buckets."""

        settings = get_settings()
        return cls(
            auth,
            store,
            channel,
            attachments=build_object_store(settings.attachments_bucket),
            avatars=build_object_store(settings.avatars_bucket),
        )

    @property
    def user_id(self) -> UUID | None:
        return self._active_user

    async def start(self) -> ProfileRead | None:
        return await self.identity.start()

    async def stop(self) -> None:
        self.identity.stop()
        await self._teardown()
        await self.router.close()

    async def _on_identity(self, profile: ProfileRead | None) -> None:
        user_id = profile.id if profile else None
        if user_id == self._active_user:
            return
        await self._teardown()
        self.friends.bind(user_id)
        self.groups.bind(user_id)
        self._active_user = user_id
        if user_id is None:
            return
        await self.router.watch_friend_edges(user_id)
        await self.friends.refresh()
        await self.groups.refresh()

    async def _teardown(self) -> None:
        for group_id in self.messages.open_groups:
            self.messages.close(group_id)
        await self.router.reset()
        if self._active_user is not None:
            logger.info("Tore down sync state for %s", self._active_user)

    def _require_user(self) -> UUID:
        if self._active_user is None:
            raise ValidationError("No signed-in user")
        return self._active_user

    async def open_group(self, group_id: UUID) -> tuple[MessageRead, ...]:
        self._require_user()
        self.messages.open(group_id)
        await self.router.watch_group(group_id)
        return await self.messages.load_history(group_id)

    async def close_group(self, group_id: UUID) -> None:
        await self.router.unwatch_group(group_id)
        self.messages.close(group_id)

    async def send_message(
        self,
        group_id: UUID,
        content: str | None = None,
        attachment_ref: AttachmentRef | str | None = None,
    ) -> MessageRead:
        return await self.messages.send(group_id, self._require_user(), content=content, attachment_ref=attachment_ref)

    async def send_attachment(self, group_id: UUID, pending: PendingUpload, *, content: str | None = None) -> MessageRead:
        if self.uploads is None:
            raise ValidationError("Attachments are not configured")
        return await self.uploads.send_attachment(self.messages, group_id, self._require_user(), pending, content=content)

    async def update_avatar(self, pending: PendingUpload) -> ProfileRead:
        if self.uploads is None:
            raise ValidationError("Attachments are not configured")
        ref = await self.uploads.commit_avatar(pending, self._require_user())
        return await self.identity.update_profile(avatar_url=ref.url)

    async def create_group(self, name: str) -> GroupView:
        return await self.groups.create_group(name, self._require_user())

    async def send_friend_request(self, username: str) -> FriendEdgeRead:
        return await self.friends.send_request_by_username(self._require_user(), username)

    async def respond(self, edge_id: UUID, action: RespondAction | str) -> FriendEdgeRead | None:
        return await self.friends.respond(edge_id, action, actor_id=self._require_user())


__all__ = ["SyncClient"]
