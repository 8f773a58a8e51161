"""
Configuration and settings for the portfolio backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "dev-jwt-secret-change-in-production"


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # The admin login lives under an unlisted path segment.
    admin_secret_path: str = Field(default="admin-dashboard")

    # Tokens
    jwt_secret: str = Field(default=DEFAULT_JWT_SECRET)
    jwt_expire_days: int = Field(default=7, ge=1)
    auth_cookie_name: str = Field(default="portfolio_token")

    # Database (Postgres expected)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible image storage
    storage_endpoint: Optional[str] = Field(default=None)
    storage_region: Optional[str] = Field(default=None)
    storage_bucket: Optional[str] = Field(default=None)
    storage_public_base_url: Optional[str] = Field(default=None)
    storage_upload_prefix: str = Field(default="portfolio")
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    max_upload_bytes: int = Field(default=10 * 1024 * 1024)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    allowed_origins: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]
    )

    # Only honour X-Forwarded-For when running behind a known proxy.
    trust_proxy_headers: bool = Field(default=False)

    # A restart logs every admin out.
    revoke_sessions_on_startup: bool = Field(default=True)

    # Optional bootstrap account, created at startup when missing.
    admin_username: Optional[str] = Field(default=None)
    admin_password: Optional[str] = Field(default=None)

    @property
    def admin_api_prefix(self) -> str:
        return f"{self.api_prefix}/{self.admin_secret_path.strip('/')}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
