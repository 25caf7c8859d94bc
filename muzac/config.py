"""
Configuration and settings for the Muzac API.
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

    api_prefix: str = Field(default="")

    aws_region: Optional[str] = Field(default=None)

    # S3
    images_bucket: Optional[str] = Field(default=None)
    videos_bucket: Optional[str] = Field(default=None)
    presign_expires_in: int = Field(default=3600)
    upload_timeout_seconds: float = Field(default=25.0)

    # Cognito
    user_pool_client_id: Optional[str] = Field(default=None)

    # DynamoDB
    user_preferences_table: Optional[str] = Field(default=None)
    family_tree_table: Optional[str] = Field(default=None)
    family_tree_mom_index: str = Field(default="mom-index")
    family_tree_dad_index: str = Field(default="dad-index")

    # SQL stores for local development (SQLite or Postgres URL)
    database_url: Optional[str] = Field(default=None)

    # Remotion render function
    remotion_function_name: Optional[str] = Field(default=None)
    remotion_serve_url: Optional[str] = Field(default=None)
    remotion_composition: str = Field(default="TimelapseVideo")
    render_status_fallback_done: bool = Field(default=True)

    # Origin allowlist
    allowed_origins: list[str] = Field(
        default=[
            "https://muzac.com.tr",
            "https://www.muzac.com.tr",
            "http://localhost:3000",
        ]
    )
    default_origin: str = Field(default="https://muzac.com.tr")

    # Upload re-encoding
    compress_uploads: bool = Field(default=True)
    max_image_dimension: int = Field(default=1920)
    jpeg_quality: int = Field(default=80)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="MUZAC_USE_IN_MEMORY_BACKENDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
