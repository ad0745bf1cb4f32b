"""Object storage backends for message attachments and avatars."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from io import BytesIO
from pathlib import Path
from typing import cast
from urllib.parse import urlparse

from boto3.session import Session
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from ..config import get_settings
from ..security import MissingSecretError, is_placeholder, require_secret
from .errors import UploadError
from .ports import ObjectStore

logger = logging.getLogger(__name__)


class ObjectStoreConfigurationError(RuntimeError):
    """Raised when the configured object store cannot be built."""


class LocalObjectStore:
    """Store objects below ``root/bucket`` and expose them under ``base_url/bucket``."""

    def __init__(self, root: Path, bucket: str, *, base_url: str = "/media") -> None:
        self.bucket = bucket
        self._directory = Path(root) / bucket
        self._base_url = base_url.rstrip("/")

    def _path_for(self, key: str) -> Path:
        target = (self._directory / key.lstrip("/")).resolve()
        if self._directory.resolve() not in target.parents:
            raise UploadError(f"Object key escapes the bucket: {key}")
        return target

    async def upload(self, key: str, data: bytes, *, content_type: str, overwrite: bool = False) -> str:
        target = self._path_for(key)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb" if overwrite else "xb") as handle:
                handle.write(data)

        try:
            await run_in_threadpool(_write)
        except FileExistsError as exc:
            raise UploadError(f"Object {key} already exists") from exc
        except OSError as exc:
            logger.exception("Writing %s to local media storage failed", key)
            raise UploadError("Unable to write attachment to local storage") from exc
        return key

    def public_url(self, key: str) -> str:
        return f"{self._base_url}/{self.bucket}/{key.lstrip('/')}"


@dataclass(frozen=True)
class SpacesConfig:
    """Runtime configuration extracted from environment variables."""

    key: str
    secret: str
    region: str
    bucket: str
    api_endpoint: str
    public_endpoint: str


@lru_cache(maxsize=1)
def load_spaces_config() -> SpacesConfig:
    """Read and validate DigitalOcean Spaces configuration from the environment."""

    required = {
        name: os.getenv(name)
        for name in ("DO_SPACES_KEY", "DO_SPACES_SECRET", "DO_SPACES_REGION", "DO_SPACES_NAME", "DO_SPACES_ENDPOINT")
    }
    missing = [name for name, value in required.items() if not value or not value.strip()]
    if missing:
        raise ObjectStoreConfigurationError(
            "Missing required DigitalOcean Spaces configuration: " + ", ".join(sorted(missing))
        )

    try:
        key = require_secret("DO_SPACES_KEY")
        secret = require_secret("DO_SPACES_SECRET")
    except MissingSecretError as exc:
        raise ObjectStoreConfigurationError(str(exc)) from exc

    region = cast(str, required["DO_SPACES_REGION"]).strip()
    bucket = cast(str, required["DO_SPACES_NAME"]).strip()
    endpoint_raw = cast(str, required["DO_SPACES_ENDPOINT"]).strip()
    if is_placeholder(region) or is_placeholder(bucket):
        raise ObjectStoreConfigurationError("DO_SPACES_REGION and DO_SPACES_NAME must be real values")

    parsed = urlparse(endpoint_raw if "://" in endpoint_raw else f"https://{endpoint_raw.lstrip(':/')}")
    if not parsed.netloc:
        raise ObjectStoreConfigurationError("DO_SPACES_ENDPOINT must include a hostname.")

    return SpacesConfig(
        key=key,
        secret=secret,
        region=region,
        bucket=bucket,
        api_endpoint=f"https://{region}.digitaloceanspaces.com",
        public_endpoint=parsed.geturl().rstrip("/"),
    )


@lru_cache(maxsize=1)
def get_spaces_client() -> BaseClient:
    """Create a singleton boto3 client for Spaces interactions."""

    config = load_spaces_config()
    session = Session()
    return session.client(
        "s3",
        region_name=config.region,
        endpoint_url=config.api_endpoint,
        aws_access_key_id=config.key,
        aws_secret_access_key=config.secret,
    )


class SpacesObjectStore:
    """Public-read objects in a DigitalOcean Spaces bucket, namespaced by folder."""

    def __init__(self, folder: str, *, config: SpacesConfig | None = None, client: BaseClient | None = None) -> None:
        self.folder = folder.strip("/")
        self._config = config
        self._client = client

    @property
    def config(self) -> SpacesConfig:
        if self._config is None:
            self._config = load_spaces_config()
        return self._config

    def _object_key(self, key: str) -> str:
        return f"{self.folder}/{key.lstrip('/')}" if self.folder else key.lstrip("/")

    async def upload(self, key: str, data: bytes, *, content_type: str, overwrite: bool = False) -> str:
        # S3 puts always overwrite; collision avoidance comes from the caller's key.
        try:
            config = self.config
            s3_client = self._client or get_spaces_client()
        except ObjectStoreConfigurationError as exc:
            raise UploadError(str(exc)) from exc
        object_key = self._object_key(key)

        def _upload() -> None:
            s3_client.upload_fileobj(
                BytesIO(data),
                config.bucket,
                object_key,
                ExtraArgs={"ACL": "public-read", "ContentType": content_type},
            )

        try:
            await run_in_threadpool(_upload)
        except (ClientError, BotoCoreError) as exc:
            logger.exception("Upload to DigitalOcean Spaces failed: %s", exc)
            raise UploadError("Upload to DigitalOcean Spaces failed") from exc
        return key

    def public_url(self, key: str) -> str:
        return f"{self.config.public_endpoint}/{self._object_key(key)}"


def build_object_store(bucket: str) -> ObjectStore:
    """Return the configured backend for ``bucket``."""

    settings = get_settings()
    if settings.object_store_backend == "spaces":
        return SpacesObjectStore(bucket)
    return LocalObjectStore(settings.media_root, bucket, base_url=settings.media_base_url)


__all__ = [
    "LocalObjectStore",
    "ObjectStoreConfigurationError",
    "SpacesConfig",
    "SpacesObjectStore",
    "build_object_store",
    "get_spaces_client",
    "load_spaces_config",
]
