"""
Runtime configuration helpers for the synchronization core.

Loads DATABASE_URL and the storage settings from the environment, falling
back to the .env file located in the project root.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[1]

ENV_PATH = BASE_DIR / ".env"

# Platform-provided environment variables win over .env defaults
load_dotenv(dotenv_path=ENV_PATH, override=False)


class Settings(BaseSettings):
    database_url: str = Field(..., alias="DATABASE_URL")

    app_name: str = Field(default="chatsync", alias="APP_NAME")
    api_version: str = Field(default="0.1.0", alias="API_VERSION")

    # Object storage
    object_store_backend: Literal["local", "spaces"] = Field(default="local", alias="OBJECT_STORE_BACKEND")
    media_root: Path = Field(default=Path("media"), alias="MEDIA_ROOT")
    media_base_url: str = Field(default="/media", alias="MEDIA_BASE_URL")
    attachments_bucket: str = Field(default="attachments", alias="ATTACHMENTS_BUCKET")
    avatars_bucket: str = Field(default="avatars", alias="AVATARS_BUCKET")

    # Sessions
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
