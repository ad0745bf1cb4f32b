"""Change-notification helper shared by the engines."""
from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class ListenerSet:
    """Ordered callbacks notified after a state change.

    ``notify`` is for synchronous apply paths and only accepts plain
    callbacks; ``notify_async`` also awaits coroutine callbacks.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._callbacks: list[Callable[..., Any]] = []

    def add(self, callback: Callable[..., Any]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove

    def notify(self, *args: Any) -> None:
        for callback in list(self._callbacks):
            try:
                result = callback(*args)
            except Exception:
                logger.exception("%s listener failed", self._name)
                continue
            if inspect.isawaitable(result):
                # Never awaited on this path.
                close = getattr(result, "close", None)
                if close is not None:
                    close()
                logger.error("%s listener %r is asynchronous; use a plain callback", self._name, callback)

    async def notify_async(self, *args: Any) -> None:
        for callback in list(self._callbacks):
            result = callback(*args)
            if inspect.isawaitable(result):
                await result

    def __len__(self) -> int:
        return len(self._callbacks)


__all__ = ["ListenerSet"]
