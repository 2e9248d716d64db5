"""Application settings loaded from environment variables and .env files."""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseModel):
    """Library sync engine tuning."""

    # Hey future me - 90s matches what the web player did. Lower values hammer the count
    # endpoints for no real gain (people don't add albums every 10 seconds). The page size is
    # capped at 50 because that's Spotify's hard max for /me/playlists and /me/albums.
    poll_interval_seconds: float = Field(default=90.0, gt=0)
    page_size: int = Field(default=50, ge=1, le=50)


class DatabaseSettings(BaseModel):
    """Cache database configuration."""

    url: str = "sqlite+aiosqlite:///./data/library-cache.db"
    echo: bool = False
    pool_pre_ping: bool = True


class SpotifySettings(BaseModel):
    """Spotify Web API access."""

    api_base_url: str = "https://api.spotify.com/v1"
    access_token: SecretStr | None = None
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    requests_per_second: float = Field(default=2.0, gt=0)
    burst_size: int = Field(default=10, ge=1)

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class ObservabilitySettings(BaseModel):
    """Logging and shutdown behaviour."""

    log_json_format: bool = False
    shutdown_timeout: float = Field(default=10.0, gt=0)


class APISettings(BaseModel):
    """HTTP surface."""

    host: str = "127.0.0.1"
    port: int = Field(default=8765, ge=1, le=65535)


class Settings(BaseSettings):
    """Root settings object.

    Nested groups are addressed with a double underscore, e.g.
    ``LIBRARYSYNC_SYNC__POLL_INTERVAL_SECONDS=120`` or
    ``LIBRARYSYNC_SPOTIFY__ACCESS_TOKEN=...``.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARYSYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "librarysync"
    log_level: str = "INFO"

    sync: SyncSettings = Field(default_factory=SyncSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    api: APISettings = Field(default_factory=APISettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level

    # Yo, only meaningful for sqlite URLs - returns None for anything else (in-memory sqlite
    # included). Lifecycle uses this to create/validate the data directory before the engine
    # tries to open the file and fails with a cryptic "unable to open database file".
    def _get_sqlite_db_path(self) -> Path | None:
        url = self.database.url
        if not url.startswith("sqlite"):
            return None
        _, _, path = url.partition(":///")
        if not path or path.startswith(":memory:"):
            return None
        return Path(path)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
