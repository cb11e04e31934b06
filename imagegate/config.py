from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from a .env file if present (local dev only)
load_dotenv()


class Settings(BaseSettings):
    """Application configuration loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # General
    project_id: Optional[str] = Field(default=None, description="GCP project ID")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        validation_alias="CORS_ORIGINS",
        description="Browser origins allowed to call the API with credentials; '*' echoes any origin.",
    )

    # Storage backends
    storage_backend: Literal["gcs", "memory"] = Field(
        "gcs",
        validation_alias="STORAGE_BACKEND",
        description="'gcs' uses Cloud Storage + Firebase; 'memory' keeps everything in-process.",
    )
    bucket_name: str = Field("imagegate-images", validation_alias="BUCKET_NAME")
    firebase_credentials_json: Optional[str] = Field(
        default=None,
        validation_alias="GOOGLE_APPLICATION_CREDENTIALS",
        description="Path to service-account JSON file or JSON string itself.",
    )

    # Pyramid generation
    pyramid_mode: Literal["inline", "deferred"] = Field(
        "inline",
        validation_alias="PYRAMID_MODE",
        description="Run derivation inside the upload request or as a background task.",
    )

    # CDN signed cookies
    cdn_domain: str = Field("cdn.example.com", validation_alias="CDN_DOMAIN")
    cdn_key_pair_id: Optional[str] = Field(default=None, validation_alias="CDN_KEY_PAIR_ID")
    cdn_private_key: Optional[str] = Field(
        default=None,
        validation_alias="CDN_PRIVATE_KEY",
        description="PEM-encoded RSA private key (PKCS#1 or PKCS#8).",
        repr=False,
    )
    cdn_private_key_path: Optional[str] = Field(default=None, validation_alias="CDN_PRIVATE_KEY_PATH")
    cdn_cookie_domain: Optional[str] = Field(default=None, validation_alias="CDN_COOKIE_DOMAIN")


@lru_cache()
def get_settings() -> Settings:  # pragma: no cover
    """Return a cached Settings instance so it is only parsed once."""

    return Settings()
