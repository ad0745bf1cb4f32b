"""Helpers for driving the async services from synchronous tests."""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, TypeVar

T = TypeVar("T")


def run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


class BarrierStore:
    """Delegate to a real store, holding reads of ``table`` until ``parties`` callers have read.

    Forces concurrent callers to interleave as read, read, write, write.
    Build it inside the running event loop.
    """

    def __init__(self, inner: Any, table: str, parties: int = 2) -> None:
        self._inner = inner
        self._table = table
        self._parties = parties
        self._arrived = 0
        self._released = asyncio.Event()

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)

    async def select(self, table: str, **kwargs: Any) -> list[dict[str, Any]]:
        rows = await self._inner.select(table, **kwargs)
        if table == self._table and not self._released.is_set():
            self._arrived += 1
            if self._arrived >= self._parties:
                self._released.set()
            await self._released.wait()
        return rows


class HookedStore:
    """Delegate to a real store and run ``hook`` once, after the first read of ``table`` returns."""

    def __init__(self, inner: Any, table: str, hook: Callable[[], Any]) -> None:
        self._inner = inner
        self._table = table
        self._hook: Callable[[], Any] | None = hook

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)

    async def select(self, table: str, **kwargs: Any) -> list[dict[str, Any]]:
        rows = await self._inner.select(table, **kwargs)
        if table == self._table and self._hook is not None:
            hook, self._hook = self._hook, None
            result = hook()
            if asyncio.iscoroutine(result):
                await result
        return rows


class FailingStore:
    """Delegate to a real store but raise ``error`` for inserts into ``table``."""

    def __init__(self, inner: Any, table: str, error: Exception) -> None:
        self._inner = inner
        self._table = table
        self._error = error
        self.failures = 0

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)

    async def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        if table == self._table:
            self.failures += 1
            raise self._error
        return await self._inner.insert(table, values)
