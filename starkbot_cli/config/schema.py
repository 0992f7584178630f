"""Configuration schema for starkbot-cli."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_FLASH_BASE_URL = "https://starkbot.cloud"


class GatewayConfig(BaseModel):
    """HTTP settings for the instance gateway."""

    request_timeout_s: float = 30.0
    connect_timeout_s: float = 10.0


class DashboardConfig(BaseModel):
    """Interactive module dashboard settings."""

    refresh_interval_s: float = 5.0
    # Client-side paging heuristic; the server clamps the cursor itself.
    page_size: int = 20
    error_flash_s: float = 1.5
    fallback_width: int = 120
    fallback_height: int = 40

    @field_validator("refresh_interval_s")
    @classmethod
    def _min_refresh(cls, value: float) -> float:
        return value if value >= 1 else 5.0

    @field_validator("page_size")
    @classmethod
    def _positive_page(cls, value: int) -> int:
        return value if value > 0 else 20


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str = ""


class Config(BaseSettings):
    """Root configuration for starkbot-cli."""

    flash_base_url: str = DEFAULT_FLASH_BASE_URL
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    dashboard: DashboardConfig = Field(default_factory=DashboardConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def log_path(self) -> Path | None:
        """Explicit log file, or None for the default location."""
        value = (self.logging.file or "").strip()
        return Path(value).expanduser() if value else None

    model_config = ConfigDict(
        env_prefix="STARKBOT_",
        env_nested_delimiter="__",
        extra="ignore",
    )
