"""Shared pydantic building blocks for client-side rows."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict


def _ensure_utc(value: datetime) -> datetime:
    # SQLite hands back naive timestamps; the store always writes UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]


class RowModel(BaseModel):
    """Immutable snapshot of a store row held in client memory."""

    model_config = ConfigDict(from_attributes=True, frozen=True)


__all__ = ["RowModel", "UtcDatetime"]
