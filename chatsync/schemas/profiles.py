"""Schemas for user profiles."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import Field

from .base import RowModel, UtcDatetime


class ProfileRead(RowModel):
    id: UUID
    username: str
    display_name: str | None = None
    avatar_url: str | None = None
    theme_settings: dict[str, Any] = Field(default_factory=dict)
    created_at: UtcDatetime | None = None
    updated_at: UtcDatetime | None = None


__all__ = ["ProfileRead"]
