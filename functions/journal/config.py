"""
Configuration and settings for the Journey Diary API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("environment", "NODE_ENV"),
    )

    # Cloudinary (the frontend build exposes the same values with a VITE_ prefix)
    cloudinary_cloud_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "cloudinary_cloud_name", "VITE_CLOUDINARY_CLOUD_NAME"
        ),
    )
    cloudinary_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "cloudinary_api_key", "VITE_CLOUDINARY_API_KEY"
        ),
    )
    cloudinary_api_secret: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "cloudinary_api_secret", "VITE_CLOUDINARY_API_SECRET"
        ),
    )
    cloudinary_folder_prefix: str = Field(default="")

    # Firebase Admin (service account fields)
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_client_email: Optional[str] = Field(default=None)
    firebase_private_key: Optional[str] = Field(default=None)
    firestore_collection_prefix: str = Field(default="")

    # Geocoding / routing
    nominatim_base_url: str = Field(default="https://nominatim.openstreetmap.org")
    osrm_base_url: str = Field(default="https://router.project-osrm.org")
    geo_user_agent: str = Field(default="JourneyDiary/1.0")
    request_timeout: float = Field(default=30.0)

    # Session cookie
    session_cookie_name: str = Field(default="journey_diary_session")
    session_ttl_seconds: int = Field(default=24 * 60 * 60)
    session_cookie_secure: bool = Field(default=True)

    # Rate limiting
    rate_limit_window_seconds: int = Field(default=60)
    rate_limit_max_requests: int = Field(default=100)
    rate_limit_strict_max_requests: int = Field(default=10)
    rate_limit_sweep_interval_seconds: int = Field(default=5 * 60)

    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "use_in_memory_backends", "JOURNAL_USE_IN_MEMORY_BACKENDS"
        ),
    )

    @property
    def cloudinary_configured(self) -> bool:
        return bool(
            self.cloudinary_cloud_name
            and self.cloudinary_api_key
            and self.cloudinary_api_secret
        )

    @property
    def firebase_configured(self) -> bool:
        return bool(
            self.firebase_project_id
            and self.firebase_client_email
            and self.firebase_private_key
        )

    @property
    def firebase_private_key_pem(self) -> Optional[str]:
        # Keys pasted into env files usually carry literal "\n" sequences.
        if not self.firebase_private_key:
            return None
        return self.firebase_private_key.replace("\\n", "\n")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
