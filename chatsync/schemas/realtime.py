"""Schemas for push-channel topics and change events."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Operation = Literal["insert", "update", "delete"]


class TopicFilter(BaseModel):
    """Equality filter on one column of one table, e.g. ``messages.group_id = G``."""

    model_config = ConfigDict(frozen=True)

    table: str
    column: str
    value: str

    def matches(self, table: str, row: dict[str, Any]) -> bool:
        return table == self.table and str(row.get(self.column)) == self.value

    def __str__(self) -> str:
        return f"{self.table}:{self.column}=eq.{self.value}"


class RealtimeEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    table: str
    operation: Operation
    row: dict[str, Any] = Field(default_factory=dict)


__all__ = ["Operation", "RealtimeEvent", "TopicFilter"]
