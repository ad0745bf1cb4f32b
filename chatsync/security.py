"""Token-signing and object-storage secrets read from the environment."""
from __future__ import annotations

import os
from typing import Final

__all__ = ["MissingSecretError", "is_placeholder", "require_secret"]

_PLACEHOLDERS: Final[frozenset[str]] = frozenset(
    {"changeme", "change-me", "placeholder", "example", "secret", "your-key-here"}
)


class MissingSecretError(RuntimeError):
    """A secret needed by an adapter is unset or still holds a placeholder."""

    def __init__(self, name: str) -> None:
        super().__init__(f"{name} must be set to a real secret value")
        self.name = name


def is_placeholder(value: str | None) -> bool:
    return (value or "").strip().lower() in _PLACEHOLDERS | {""}


def require_secret(name: str) -> str:
    value = (os.getenv(name) or "").strip()
    if is_placeholder(value):
        raise MissingSecretError(name)
    return value
