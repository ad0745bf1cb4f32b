"""SQLAlchemy implementation of the record store contract."""
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Sequence

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import and_, delete, inspect, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import (
    FRIEND_EDGES_TABLE,
    GROUPS_TABLE,
    MEMBERSHIPS_TABLE,
    MESSAGES_TABLE,
    PROFILES_TABLE,
)
from ..database import create_session
from ..models import FriendEdge, Group, Membership, Message, Profile
from .change_feed import ChangeFeed
from .errors import StoreConflictError, StoreError
from .ports import Filter, Row

logger = logging.getLogger(__name__)

_MODELS: dict[str, type] = {
    PROFILES_TABLE: Profile,
    FRIEND_EDGES_TABLE: FriendEdge,
    GROUPS_TABLE: Group,
    MEMBERSHIPS_TABLE: Membership,
    MESSAGES_TABLE: Message,
}


def _model_for(table: str) -> type:
    try:
        return _MODELS[table]
    except KeyError:
        raise StoreError(f"Unknown table '{table}'") from None


def _as_row(instance: Any) -> Row:
    return {column.key: getattr(instance, column.key) for column in inspect(instance).mapper.column_attrs}


def _conditions(model: type, filters: Filter | None) -> list[Any]:
    conditions: list[Any] = []
    for name, value in (filters or {}).items():
        column = getattr(model, name)
        if isinstance(value, (list, tuple, set, frozenset)):
            conditions.append(column.in_(list(value)))
        else:
            conditions.append(column == value)
    return conditions


def _identity(model: type, instance: Any) -> list[Any]:
    return [column == getattr(instance, column.key) for column in inspect(model).primary_key]


class SqlRecordStore:
    """Run filtered reads and conditional writes in the worker thread pool.

    When a :class:`ChangeFeed` is attached, every committed insert, update and
    delete is published to it, mirroring database change notifications.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = create_session,
        *,
        feed: ChangeFeed | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._feed = feed

    async def select(
        self,
        table: str,
        *,
        where: Filter | None = None,
        any_of: Sequence[Filter] | None = None,
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[Row]:
        model = _model_for(table)

        def _select() -> list[Row]:
            stmt = select(model).where(*_conditions(model, where))
            if any_of:
                stmt = stmt.where(or_(*(and_(*_conditions(model, branch)) for branch in any_of)))
            for name in order_by:
                column = getattr(model, name.lstrip("-"))
                stmt = stmt.order_by(column.desc() if name.startswith("-") else column.asc())
            if limit is not None:
                stmt = stmt.limit(limit)
            with self._session_factory() as session:
                return [_as_row(instance) for instance in session.scalars(stmt)]

        return await self._run(table, "select", _select)

    async def insert(self, table: str, values: Filter) -> Row:
        model = _model_for(table)

        def _insert() -> Row:
            with self._session_factory() as session:
                instance = model(**dict(values))
                try:
                    session.add(instance)
                    session.commit()
                except SQLAlchemyError:
                    session.rollback()
                    raise
                session.refresh(instance)
                return _as_row(instance)

        row = await self._run(table, "insert", _insert)
        await self._publish(table, "insert", [row])
        return row

    async def update(self, table: str, values: Filter, *, where: Filter) -> list[Row]:
        model = _model_for(table)
        conditions = _conditions(model, where)

        def _update() -> list[Row]:
            with self._session_factory() as session:
                try:
                    candidates = list(session.scalars(select(model).where(*conditions)))
                    touched: list[Any] = []
                    for instance in candidates:
                        # Re-check the filter per row so a concurrent writer wins cleanly.
                        stmt = update(model).where(*_identity(model, instance), *conditions).values(**dict(values))
                        result = session.execute(stmt, execution_options={"synchronize_session": False})
                        if result.rowcount:
                            touched.append(instance)
                    session.commit()
                except SQLAlchemyError:
                    session.rollback()
                    raise
                rows: list[Row] = []
                for instance in touched:
                    session.refresh(instance)
                    rows.append(_as_row(instance))
                return rows

        rows = await self._run(table, "update", _update)
        await self._publish(table, "update", rows)
        return rows

    async def delete(self, table: str, *, where: Filter) -> list[Row]:
        model = _model_for(table)
        conditions = _conditions(model, where)

        def _delete() -> list[Row]:
            with self._session_factory() as session:
                try:
                    candidates = list(session.scalars(select(model).where(*conditions)))
                    removed: list[Row] = []
                    for instance in candidates:
                        snapshot = _as_row(instance)
                        stmt = delete(model).where(*_identity(model, instance), *conditions)
                        result = session.execute(stmt, execution_options={"synchronize_session": False})
                        if result.rowcount:
                            removed.append(snapshot)
                    session.commit()
                except SQLAlchemyError:
                    session.rollback()
                    raise
                return removed

        rows = await self._run(table, "delete", _delete)
        await self._publish(table, "delete", rows)
        return rows

    async def _run(self, table: str, operation: str, work: Callable[[], Any]) -> Any:
        try:
            return await run_in_threadpool(work)
        except IntegrityError as exc:
            logger.warning("Constraint violation during %s on %s: %s", operation, table, exc.orig)
            raise StoreConflictError(f"Conflicting {operation} on {table}") from exc
        except SQLAlchemyError as exc:
            logger.exception("Record store %s on %s failed", operation, table)
            raise StoreError(f"Failed to {operation} {table}") from exc

    async def _publish(self, table: str, operation: str, rows: Sequence[Mapping[str, Any]]) -> None:
        if self._feed is None:
            return
        for row in rows:
            await self._feed.publish(table, operation, dict(row))  # type: ignore[arg-type]


__all__ = ["SqlRecordStore"]
