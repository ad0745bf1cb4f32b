"""Shared fixtures: a SQLite record store, a fresh change feed and row factories."""
from __future__ import annotations

import os
from typing import Callable, Iterator

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_chatsync.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("MEDIA_ROOT", "./test_media")

import pytest  # noqa: E402
from sqlalchemy import delete  # noqa: E402

from chatsync.database import SessionLocal, drop_db, init_db  # noqa: E402
from chatsync.models import FriendEdge, Group, Membership, Message, Profile  # noqa: E402
from chatsync.schemas import ProfileRead  # noqa: E402
from chatsync.services import ChangeFeed, SqlRecordStore  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _create_schema() -> Iterator[None]:
    init_db()
    yield
    drop_db()


@pytest.fixture(autouse=True)
def _clean_database() -> Iterator[None]:
    with SessionLocal() as session:
        for model in (Message, Membership, Group, FriendEdge, Profile):
            session.execute(delete(model))
        session.commit()
    yield


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def store(feed: ChangeFeed) -> SqlRecordStore:
    return SqlRecordStore(feed=feed)


@pytest.fixture
def profile_factory() -> Callable[[str], ProfileRead]:
    def _factory(username: str) -> ProfileRead:
        with SessionLocal() as session:
            profile = Profile(username=username, display_name=username.title(), theme_settings={})
            session.add(profile)
            session.commit()
            session.refresh(profile)
            return ProfileRead.model_validate(profile)

    return _factory


@pytest.fixture
def add_member() -> Callable[..., None]:
    def _add(group_id, user_id, role: str = "member") -> None:
        with SessionLocal() as session:
            session.add(Membership(group_id=group_id, user_id=user_id, role=role))
            session.commit()

    return _add
