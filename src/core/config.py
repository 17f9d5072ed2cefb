"""Application configuration using pydantic-settings."""
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str

    # Development mode - uses a fixed local user instead of the gateway identity header
    dev_mode: bool = Field(default=False, validation_alias="DEV_MODE")

    # Header set by the upstream auth gateway with the authenticated subject
    identity_header: str = Field(
        default="X-Authenticated-User", validation_alias="IDENTITY_HEADER",
    )

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:5173",
        validation_alias="CORS_ORIGINS",
    )

    # Redis - persistent tier of the local cache
    redis_url: str = Field(default="redis://localhost:6379", validation_alias="REDIS_URL")
    redis_enabled: bool = Field(default=True, validation_alias="REDIS_ENABLED")
    redis_pool_size: int = Field(default=20, validation_alias="REDIS_POOL_SIZE")

    # Screenshot/rendering service
    screenshot_api_url: str = Field(
        default="http://localhost:8080", validation_alias="SCREENSHOT_API_URL",
    )
    screenshot_api_key: str = Field(default="", validation_alias="SCREENSHOT_API_KEY")
    screenshot_timeout_ms: int = Field(default=15000, validation_alias="SCREENSHOT_TIMEOUT_MS")
    screenshot_health_timeout: float = Field(
        default=5.0, validation_alias="SCREENSHOT_HEALTH_TIMEOUT",
    )

    # Generic favicon service ({domain} is substituted with the URL hostname)
    favicon_service_url: str = Field(
        default="https://www.google.com/s2/favicons?domain={domain}&sz=64",
        validation_alias="FAVICON_SERVICE_URL",
    )

    # Blob storage for uploaded screenshots
    blob_storage_dir: str = Field(default="./data/blobs", validation_alias="BLOB_STORAGE_DIR")
    blob_public_base_url: str = Field(
        default="http://localhost:8000/thumbnails/blobs",
        validation_alias="BLOB_PUBLIC_BASE_URL",
    )

    # Local cache
    cache_max_memory_entries: int = Field(
        default=100, validation_alias="CACHE_MAX_MEMORY_ENTRIES",
    )
    cache_default_ttl_seconds: int = Field(
        default=300, validation_alias="CACHE_DEFAULT_TTL_SECONDS",
    )

    @model_validator(mode="after")
    def validate_dev_mode_security(self) -> "Settings":
        """
        Prevent DEV_MODE from being enabled with a production database.

        DEV_MODE replaces the gateway identity with a fixed local user, so we must
        ensure it's only used with local development databases.
        """
        if not self.dev_mode:
            return self

        try:
            parsed = urlparse(self.database_url)
            scheme = parsed.scheme
            hostname = parsed.hostname or ""
        except Exception:
            # If we can't parse the URL, block DEV_MODE (fail-safe)
            scheme = ""
            hostname = ""

        # SQLite URLs have no hostname and are always local
        if scheme.startswith("sqlite"):
            return self

        local_hosts = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}
        if hostname.lower() not in local_hosts:
            raise ValueError(
                f"DEV_MODE cannot be enabled with a non-local database. "
                f"Database host '{hostname}' appears to be a production database. "
                f"DEV_MODE bypasses gateway authentication and must only be used locally.",
            )

        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def screenshot_configured(self) -> bool:
        """Whether both the rendering service URL and its API key are set."""
        return bool(self.screenshot_api_url and self.screenshot_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
