"""
Configuration and settings for the site backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")
    host: str = Field(default="127.0.0.1", validation_alias="SITE_HOST")
    port: int = Field(default=8000, validation_alias="SITE_PORT")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="SITE_USE_IN_MEMORY_BACKENDS"
    )

    # Self-hosted stores (any SQLAlchemy URL)
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")

    # Firebase project
    firebase_credentials_path: Optional[str] = Field(
        default=None, validation_alias="GOOGLE_APPLICATION_CREDENTIALS"
    )
    firebase_project_id: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_PROJECT_ID"
    )
    firebase_database_url: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_DATABASE_URL"
    )
    firebase_storage_bucket: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_STORAGE_BUCKET"
    )
    firebase_web_api_key: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_WEB_API_KEY"
    )

    # Google sign-in
    google_client_id: Optional[str] = Field(
        default=None, validation_alias="GOOGLE_CLIENT_ID"
    )
    google_redirect_uri: str = Field(
        default="http://localhost:8000/auth/callback",
        validation_alias="GOOGLE_REDIRECT_URI",
    )

    # S3-compatible storage
    s3_endpoint: Optional[str] = Field(default=None, validation_alias="S3_ENDPOINT")
    s3_region: Optional[str] = Field(default=None, validation_alias="S3_REGION")
    s3_bucket: Optional[str] = Field(default=None, validation_alias="S3_BUCKET")
    s3_public_base_url: Optional[str] = Field(
        default=None, validation_alias="S3_PUBLIC_BASE_URL"
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, validation_alias="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, validation_alias="AWS_SECRET_ACCESS_KEY"
    )

    # Uploads
    max_image_upload_bytes: int = Field(default=5 * 1024 * 1024)
    # Multiple of 256 KiB (GCS resumable) and at least 5 MiB (S3 multipart).
    upload_chunk_size: int = Field(default=8 * 1024 * 1024)

    notification_history: int = Field(default=50)
    max_client_sessions: int = Field(default=1000)

    @property
    def firebase_configured(self) -> bool:
        return bool(self.firebase_project_id or self.firebase_credentials_path)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
