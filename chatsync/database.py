"""Engine and session factory behind :class:`~chatsync.services.SqlRecordStore`."""
from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import get_settings


def engine_options(database_url: str) -> dict[str, Any]:
    """Keyword arguments for :func:`create_engine` suited to ``database_url``."""

    options: dict[str, Any] = {"pool_pre_ping": True, "future": True}
    if make_url(database_url).get_backend_name() == "sqlite":
        # Store calls run on whichever worker thread the pool hands out.
        options["connect_args"] = {"check_same_thread": False}
    return options


settings = get_settings()

engine: Engine = create_engine(settings.database_url, **engine_options(settings.database_url))

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

Base = declarative_base()


def create_session() -> Session:
    return SessionLocal()


def init_db(bind: Engine | None = None) -> None:
    """Create the profiles, friend_edges, groups, memberships and messages tables when missing."""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def drop_db(bind: Engine | None = None) -> None:
    from . import models  # noqa: F401

    Base.metadata.drop_all(bind=bind or engine)


__all__ = ["Base", "SessionLocal", "create_session", "drop_db", "engine", "engine_options", "init_db"]
