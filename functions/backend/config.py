"""
Configuration and settings for the iSIF backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared import constants


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service and workers."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Document store: Firestore, or any SQLAlchemy URL (Postgres expected)
    use_firestore: bool = Field(
        default=False,
        validation_alias=AliasChoices("ISIF_USE_FIRESTORE", "USE_FIRESTORE"),
    )
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # Blob storage: Firebase Storage bucket, or S3-compatible storage
    firebase_storage_bucket: Optional[str] = Field(
        default=None, env="FIREBASE_STORAGE_BUCKET"
    )
    s3_endpoint: Optional[str] = Field(default=None, env="S3_ENDPOINT")
    s3_region: Optional[str] = Field(default=None, env="S3_REGION")
    s3_bucket: Optional[str] = Field(default=None, env="S3_BUCKET")
    aws_access_key_id: Optional[str] = Field(
        default=None, env="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, env="AWS_SECRET_ACCESS_KEY"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "ISIF_USE_IN_MEMORY_BACKENDS", "USE_IN_MEMORY_BACKENDS"
        ),
    )

    # Queue (Redis)
    redis_url: Optional[str] = Field(default=None, env="REDIS_URL")
    redis_queue_key: str = Field(default="isif:deliveries", env="REDIS_QUEUE_KEY")

    # Push notifications through Firebase Cloud Messaging
    push_enabled: bool = Field(default=False, env="PUSH_ENABLED")

    # Delivery
    max_retry_attempts: int = Field(
        default=constants.MAX_RETRY_ATTEMPTS, env="MAX_RETRY_ATTEMPTS"
    )
    retry_delay_seconds: float = Field(
        default=constants.RETRY_DELAY_SECONDS, env="RETRY_DELAY_SECONDS"
    )

    # Uploads
    max_file_size_bytes: int = Field(
        default=constants.MAX_FILE_SIZE_BYTES, env="MAX_FILE_SIZE_BYTES"
    )
    upload_chunk_size_bytes: int = Field(
        default=constants.UPLOAD_CHUNK_SIZE_BYTES, env="UPLOAD_CHUNK_SIZE_BYTES"
    )

    share_base_url: str = Field(
        default=constants.SHARE_BASE_URL, env="SHARE_BASE_URL"
    )

    # Moderation: uids allowed to work the report queue, as a JSON list
    moderator_uids: List[str] = Field(default_factory=list, env="MODERATOR_UIDS")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
