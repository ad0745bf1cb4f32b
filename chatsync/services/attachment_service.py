"""Turn local files into durable attachment references."""
from __future__ import annotations

import logging
import mimetypes
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi.concurrency import run_in_threadpool

from ..schemas import AttachmentRef, MessageRead
from .errors import UploadError, ValidationError
from .ports import ObjectStore

if TYPE_CHECKING:  # pragma: no cover
    from .message_stream import MessageStreamReconciler

logger = logging.getLogger(__name__)

_DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class PendingUpload:
    """A file staged for upload; nothing has left the device yet."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def _extension(filename: str) -> str:
    extension = Path(filename or "").suffix.lower()
    if extension and not re.fullmatch(r"\.[a-z0-9]{1,10}", extension):
        return ""
    return extension


def _owner_segment(owner_id: uuid.UUID) -> str:
    segment = re.sub(r"[^A-Za-z0-9_-]", "-", str(owner_id)).strip("-")
    if not segment:
        raise ValidationError("Owner id cannot be used as a storage path")
    return segment


class AttachmentPipeline:
    """Stage files, then commit them to the object store under the owner's prefix.

    ``commit`` never retries; on :class:`UploadError` the caller keeps the
    :class:`PendingUpload` and decides whether to commit again or discard it.
    """

    def __init__(self, attachments: ObjectStore, *, avatars: ObjectStore | None = None) -> None:
        self._attachments = attachments
        self._avatars = avatars or attachments

    async def stage(
        self,
        source: str | Path | bytes,
        *,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> PendingUpload:
        if isinstance(source, (bytes, bytearray)):
            data = bytes(source)
            name = filename or "attachment"
        else:
            path = Path(source)
            try:
                data = await run_in_threadpool(path.read_bytes)
            except OSError as exc:
                raise ValidationError(f"Cannot read {path.name}: {exc.strerror or exc}") from exc
            name = filename or path.name
        if not data:
            raise ValidationError("Attachment is empty")
        guessed = content_type or mimetypes.guess_type(name)[0] or _DEFAULT_CONTENT_TYPE
        return PendingUpload(filename=name, content_type=guessed, data=data)

    async def commit(self, pending: PendingUpload, owner_id: uuid.UUID) -> AttachmentRef:
        key = f"{_owner_segment(owner_id)}/{uuid.uuid4().hex}{_extension(pending.filename)}"
        return await self._upload(self._attachments, key, pending, overwrite=False)

    async def commit_avatar(self, pending: PendingUpload, owner_id: uuid.UUID) -> AttachmentRef:
        key = f"{_owner_segment(owner_id)}/avatar{_extension(pending.filename)}"
        return await self._upload(self._avatars, key, pending, overwrite=True)

    async def _upload(self, store: ObjectStore, key: str, pending: PendingUpload, *, overwrite: bool) -> AttachmentRef:
        try:
            stored_key = await store.upload(key, pending.data, content_type=pending.content_type, overwrite=overwrite)
        except UploadError:
            logger.warning("Upload of %s failed", key)
            raise
        url = store.public_url(stored_key)
        if not url:
            raise UploadError("Object store returned no public URL")
        logger.info("Uploaded %s (%d bytes)", stored_key, pending.size)
        return AttachmentRef(key=stored_key, url=url, content_type=pending.content_type, size=pending.size)

    async def send_attachment(
        self,
        reconciler: "MessageStreamReconciler",
        group_id: uuid.UUID,
        sender_id: uuid.UUID,
        pending: PendingUpload,
        *,
        content: str | None = None,
    ) -> MessageRead:
        """Upload then send; a failed upload produces no message."""

        ref = await self.commit(pending, sender_id)
        return await reconciler.send(group_id, sender_id, content=content, attachment_ref=ref)


__all__ = ["AttachmentPipeline", "PendingUpload"]
