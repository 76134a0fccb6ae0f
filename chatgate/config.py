"""Configuration management for chatgate."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionSettings(BaseSettings):
    """Session lifecycle settings."""

    model_config = SettingsConfigDict(env_prefix="SESSION_")

    # Time allowed in SCAN_REQUIRED before the session fails (0 = no timeout)
    scan_timeout_seconds: float = Field(default=120.0, ge=0.0)

    # How long get_working_session may wait for a starting session (0 = fail fast)
    ready_wait_seconds: float = Field(default=0.0, ge=0.0)

    # Upper bound for releasing an engine handle
    stop_timeout_seconds: float = Field(default=10.0, gt=0.0)

    # Maximum registered sessions (0 = unlimited)
    max_sessions: int = Field(default=0, ge=0)


class EngineSettings(BaseSettings):
    """Chat-network bridge engine settings."""

    model_config = SettingsConfigDict(env_prefix="ENGINE_")

    bridge_url: str = "ws://localhost:3001"
    bridge_token: str | None = None
    request_timeout_seconds: float = Field(default=30.0, gt=0.0)
    reconnect_delay_seconds: float = Field(default=5.0, ge=0.0)
    max_reconnect_attempts: int = Field(default=5, ge=0)


class APISettings(BaseSettings):
    """API server settings."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 3000

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "chatgate"
    version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Sub-settings
    session: SessionSettings = Field(default_factory=SessionSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    api: APISettings = Field(default_factory=APISettings)


@lru_cache
def get_settings() -> Settings:
    """Get application settings singleton (cached)."""
    return Settings()
