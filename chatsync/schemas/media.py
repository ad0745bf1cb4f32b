"""Schemas for uploaded attachments."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class AttachmentRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    url: str
    content_type: str
    size: int


__all__ = ["AttachmentRef"]
