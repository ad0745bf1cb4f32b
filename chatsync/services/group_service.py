"""Group creation and the signed-in user's memberships."""
from __future__ import annotations

import logging
from typing import Any, Callable
from uuid import UUID

from ..constants import GROUP_NAME_MAX_LENGTH, GROUPS_TABLE, MEMBERSHIPS_TABLE, PROFILES_TABLE
from ..schemas import GroupMember, GroupRead, GroupRole, GroupView, MembershipRead, ProfileRead
from .errors import PartialCreateError, StoreConflictError, StoreError, ValidationError
from .listeners import ListenerSet
from .ports import RecordStore

logger = logging.getLogger(__name__)

_ROLE_ORDER = {GroupRole.OWNER: 0, GroupRole.ADMIN: 1, GroupRole.MEMBER: 2}


def _clean_group_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Group name is required")
    if len(cleaned) > GROUP_NAME_MAX_LENGTH:
        raise ValidationError(f"Group name must be at most {GROUP_NAME_MAX_LENGTH} characters")
    return cleaned


class GroupMembershipManager:
    """Create groups and track which groups the signed-in user belongs to."""

    def __init__(self, store: RecordStore, user_id: UUID | None = None) -> None:
        self._store = store
        self._user_id = user_id
        self._groups: dict[UUID, GroupView] = {}
        self._listeners = ListenerSet("groups")

    @property
    def groups(self) -> list[GroupView]:
        return sorted(self._groups.values(), key=lambda view: (view.group.created_at, str(view.id)))

    def role_in(self, group_id: UUID) -> GroupRole | None:
        view = self._groups.get(group_id)
        return view.role if view else None

    def bind(self, user_id: UUID | None) -> None:
        if user_id == self._user_id:
            return
        self._user_id = user_id
        self._groups.clear()
        self._listeners.notify()

    def add_listener(self, callback: Callable[[], Any]) -> Callable[[], None]:
        return self._listeners.add(callback)

    async def refresh(self) -> list[GroupView]:
        user_id = self._user_id
        if user_id is None:
            raise ValidationError("No signed-in user")
        views = await self.list_groups(user_id)
        if user_id != self._user_id:
            return self.groups
        self._groups = {view.id: view for view in views}
        logger.info("Hydrated %d groups for %s", len(views), user_id)
        self._listeners.notify()
        return self.groups

    async def create_group(self, name: str, owner_id: UUID) -> GroupView:
        """Create a group and its owner membership.

        If the membership cannot be written the group row is left in place and
        :class:`PartialCreateError` is raised so the caller can repair or discard it.
        """

        cleaned = _clean_group_name(name)
        group = GroupRead.model_validate(
            await self._store.insert(GROUPS_TABLE, {"name": cleaned, "owner_id": owner_id})
        )
        try:
            await self._store.insert(
                MEMBERSHIPS_TABLE,
                {"group_id": group.id, "user_id": owner_id, "role": GroupRole.OWNER.value},
            )
        except StoreError as exc:
            logger.error("Group %s created without its owner membership: %s", group.id, exc)
            raise PartialCreateError("Group was created but its owner could not be added", group=group, cause=exc) from exc

        view = GroupView(group=group, role=GroupRole.OWNER)
        logger.info("Group %s (%s) created by %s", group.id, cleaned, owner_id)
        self._track(view)
        return view

    async def repair_partial(self, error: PartialCreateError) -> GroupView:
        """Retry the owner membership insert for a half-created group."""

        group = error.group
        try:
            await self._store.insert(
                MEMBERSHIPS_TABLE,
                {"group_id": group.id, "user_id": group.owner_id, "role": GroupRole.OWNER.value},
            )
        except StoreConflictError:
            # The first attempt reached the store after all.
            logger.info("Owner membership for group %s already present", group.id)
        view = GroupView(group=group, role=GroupRole.OWNER)
        self._track(view)
        return view

    async def discard_orphan(self, error: PartialCreateError) -> None:
        """Delete the group row left behind by a failed creation."""

        removed = await self._store.delete(GROUPS_TABLE, where={"id": error.group.id})
        logger.info("Discarded orphaned group %s (%d rows)", error.group.id, len(removed))

    async def list_groups(self, user_id: UUID) -> list[GroupView]:
        memberships = [
            MembershipRead.model_validate(row)
            for row in await self._store.select(MEMBERSHIPS_TABLE, where={"user_id": user_id})
        ]
        if not memberships:
            return []
        roles = {membership.group_id: membership.role for membership in memberships}
        rows = await self._store.select(GROUPS_TABLE, where={"id": list(roles)}, order_by=("created_at", "id"))
        groups = [GroupRead.model_validate(row) for row in rows]
        return [GroupView(group=group, role=roles[group.id]) for group in groups]

    async def list_members(self, group_id: UUID) -> list[GroupMember]:
        memberships = [
            MembershipRead.model_validate(row)
            for row in await self._store.select(MEMBERSHIPS_TABLE, where={"group_id": group_id})
        ]
        if not memberships:
            return []
        rows = await self._store.select(PROFILES_TABLE, where={"id": [membership.user_id for membership in memberships]})
        profiles = {profile.id: profile for profile in (ProfileRead.model_validate(row) for row in rows)}
        members = [
            GroupMember(profile=profiles[membership.user_id], role=membership.role)
            for membership in memberships
            if membership.user_id in profiles
        ]
        return sorted(members, key=lambda member: (_ROLE_ORDER[member.role], member.profile.username.lower()))

    def _track(self, view: GroupView) -> None:
        if self._user_id is None or view.group.owner_id != self._user_id:
            return
        self._groups[view.id] = view
        self._listeners.notify()


__all__ = ["GroupMembershipManager"]
