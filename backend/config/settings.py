"""
Centralized configuration using Pydantic-settings v2.

Benefits:
- Single source of truth for connection, capture and logging options
- Type-safe validation
- Environment variable overrides (CHARTCAST_OBS__PORT=4456 or CHARTCAST_OBS_PORT=4456)
- Sensible defaults with documentation

Usage:
    from config.settings import get_settings
    settings = get_settings()
    print(settings.obs.url)
"""

from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ObsSettings(BaseSettings):
    """obs-websocket connection configuration."""

    model_config = SettingsConfigDict(env_prefix="CHARTCAST_OBS_")

    host: str = Field(default="localhost", description="OBS WebSocket host")
    port: int = Field(default=4455, ge=1, le=65535, description="OBS WebSocket port")
    password: SecretStr = Field(default=SecretStr(""), description="Shared secret (empty=none)")
    rpc_version: int = Field(default=1, ge=1, description="Requested RPC version")
    event_subscriptions: int = Field(
        default=64, ge=0, description="Event subscription mask (64 = Outputs)"
    )
    connect_timeout_s: float = Field(default=10.0, gt=0, description="Handshake deadline")
    request_timeout_s: float = Field(default=10.0, gt=0, description="Per-request deadline")
    clear_subscriptions_on_disconnect: bool = Field(
        default=False, description="Drop event handlers when the session ends"
    )
    max_message_mb: int = Field(default=16, ge=1, description="Max inbound frame size")

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"


class CaptureSettings(BaseSettings):
    """Window-capture workflow configuration."""

    model_config = SettingsConfigDict(env_prefix="CHARTCAST_CAPTURE_")

    default_scene_name: str = Field(default="Bar Chart Race Recording")
    default_source_name: str = Field(default="Bar Chart Capture")
    input_kind: str = Field(default="window_capture", description="OBS input kind to create")
    settle_delay_s: float = Field(
        default=2.0, ge=0.0, description="Wait after binding before querying geometry"
    )
    retry_delays_s: list[float] = Field(
        default=[0.5, 1.0, 1.5, 2.0], description="Delays between transform polls"
    )

    @field_validator("retry_delays_s")
    @classmethod
    def _non_empty_delays(cls, value: list[float]) -> list[float]:
        if not value:
            raise ValueError("retry_delays_s needs at least one entry")
        if any(d < 0 for d in value):
            raise ValueError("retry delays must be non-negative")
        return value


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="CHARTCAST_LOG_")

    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="text", description="Log format (json, text)")
    file_enabled: bool = Field(default=False, description="Enable file logging")
    logs_dir: Path | None = Field(default=None, description="Log directory (default: ./logs)")
    max_storage_mb: int = Field(default=100, ge=1, description="Max total log storage")


class Settings(BaseSettings):
    """Root settings combining all sub-settings."""

    model_config = SettingsConfigDict(env_prefix="CHARTCAST_", env_nested_delimiter="__")

    obs: ObsSettings = Field(default_factory=ObsSettings)
    capture: CaptureSettings = Field(default_factory=CaptureSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    debug: bool = Field(default=False, description="Enable debug mode")


# Global singleton
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
