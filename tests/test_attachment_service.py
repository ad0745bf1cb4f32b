"""Attachment staging, uploads to both object store backends and failure handling."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from botocore.exceptions import ClientError

from chatsync.services import (
    AttachmentPipeline,
    GroupMembershipManager,
    LocalObjectStore,
    MessageStreamReconciler,
    SpacesObjectStore,
    UploadError,
    ValidationError,
)
from chatsync.services.object_store import SpacesConfig, load_spaces_config

from support import run

SPACES_CONFIG = SpacesConfig(
    key="key",
    secret="secret",
    region="nyc3",
    bucket="chatsync",
    api_endpoint="https://nyc3.digitaloceanspaces.com",
    public_endpoint="https://chatsync.nyc3.cdn.digitaloceanspaces.com",
)


class _RecordingClient:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self._error = error

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):  # noqa: N803 - boto3 signature
        if self._error is not None:
            raise self._error
        self.calls.append({"data": fileobj.read(), "bucket": bucket, "key": key, "extra": ExtraArgs})


class _BrokenStore:
    bucket = "attachments"

    async def upload(self, key: str, data: bytes, *, content_type: str, overwrite: bool = False) -> str:
        raise UploadError("object store offline")

    def public_url(self, key: str) -> str:
        return f"/broken/{key}"


def test_stage_reads_files_and_guesses_content_type(tmp_path: Path):
    source = tmp_path / "photo.png"
    source.write_bytes(b"\x89PNG data")
    pipeline = AttachmentPipeline(LocalObjectStore(tmp_path / "media", "attachments"))

    async def scenario():
        staged = await pipeline.stage(source)
        assert staged.filename == "photo.png"
        assert staged.content_type == "image/png"
        assert staged.size == len(b"\x89PNG data")

        raw = await pipeline.stage(b"plain", filename="notes.txt")
        assert raw.content_type == "text/plain"

        with pytest.raises(ValidationError):
            await pipeline.stage(b"")
        with pytest.raises(ValidationError):
            await pipeline.stage(tmp_path / "missing.bin")

    run(scenario())


def test_commit_writes_under_the_owner_prefix(tmp_path: Path, profile_factory):
    alice = profile_factory("alice")
    root = tmp_path / "media"
    pipeline = AttachmentPipeline(LocalObjectStore(root, "attachments", base_url="/media/"))

    async def scenario():
        staged = await pipeline.stage(b"hello", filename="greeting.TXT")
        first = await pipeline.commit(staged, alice.id)
        second = await pipeline.commit(staged, alice.id)

        assert first.key.startswith(f"{alice.id}/")
        assert first.key.endswith(".txt")
        assert first.key != second.key
        assert first.url == f"/media/attachments/{first.key}"
        assert (root / "attachments" / first.key).read_bytes() == b"hello"

    run(scenario())


def test_avatar_commit_overwrites_the_previous_avatar(tmp_path: Path, profile_factory):
    alice = profile_factory("alice")
    root = tmp_path / "media"
    pipeline = AttachmentPipeline(
        LocalObjectStore(root, "attachments"),
        avatars=LocalObjectStore(root, "avatars"),
    )

    async def scenario():
        first = await pipeline.commit_avatar(await pipeline.stage(b"one", filename="me.png"), alice.id)
        second = await pipeline.commit_avatar(await pipeline.stage(b"two", filename="me.png"), alice.id)
        assert first.key == second.key == f"{alice.id}/avatar.png"
        assert (root / "avatars" / second.key).read_bytes() == b"two"

    run(scenario())


def test_local_store_refuses_keys_outside_the_bucket(tmp_path: Path):
    local = LocalObjectStore(tmp_path, "attachments")
    with pytest.raises(UploadError):
        run(local.upload("../escape.txt", b"x", content_type="text/plain"))


def test_failed_upload_sends_no_message(store, profile_factory):
    alice = profile_factory("alice")

    async def scenario():
        group = await GroupMembershipManager(store, alice.id).create_group("Team", alice.id)
        stream = MessageStreamReconciler(store)
        stream.open(group.id)
        pipeline = AttachmentPipeline(_BrokenStore())
        staged = await pipeline.stage(b"data", filename="report.pdf")

        with pytest.raises(UploadError):
            await pipeline.send_attachment(stream, group.id, alice.id, staged, content="see attached")
        assert stream.messages(group.id) == ()
        assert await store.select("messages") == []

    run(scenario())


def test_attachment_message_carries_the_uploaded_url(tmp_path: Path, store, profile_factory):
    alice = profile_factory("alice")

    async def scenario():
        group = await GroupMembershipManager(store, alice.id).create_group("Team", alice.id)
        stream = MessageStreamReconciler(store)
        stream.open(group.id)
        pipeline = AttachmentPipeline(LocalObjectStore(tmp_path, "attachments"))
        staged = await pipeline.stage(b"data", filename="report.pdf")

        message = await pipeline.send_attachment(stream, group.id, alice.id, staged)
        assert message.content is None
        assert message.attachment_url.startswith("/media/attachments/")
        assert message.attachment_url.endswith(".pdf")
        assert stream.messages(group.id) == (message,)

    run(scenario())


def test_spaces_upload_is_public_read_under_the_folder():
    client = _RecordingClient()
    spaces = SpacesObjectStore("attachments", config=SPACES_CONFIG, client=client)

    key = run(spaces.upload("owner/file.png", b"png", content_type="image/png"))
    assert key == "owner/file.png"
    assert client.calls == [
        {
            "data": b"png",
            "bucket": "chatsync",
            "key": "attachments/owner/file.png",
            "extra": {"ACL": "public-read", "ContentType": "image/png"},
        }
    ]
    assert spaces.public_url(key) == "https://chatsync.nyc3.cdn.digitaloceanspaces.com/attachments/owner/file.png"


def test_spaces_client_errors_become_upload_errors():
    error = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
    spaces = SpacesObjectStore("attachments", config=SPACES_CONFIG, client=_RecordingClient(error))
    with pytest.raises(UploadError):
        run(spaces.upload("owner/file.png", b"png", content_type="image/png"))


def test_missing_spaces_configuration_is_an_upload_error(monkeypatch):
    for name in ("DO_SPACES_KEY", "DO_SPACES_SECRET", "DO_SPACES_REGION", "DO_SPACES_NAME", "DO_SPACES_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)
    load_spaces_config.cache_clear()
    try:
        with pytest.raises(UploadError):
            run(SpacesObjectStore("attachments").upload("owner/file.png", b"png", content_type="image/png"))
    finally:
        load_spaces_config.cache_clear()
