"""Configuration management for TikTok Live MCP."""

import os
from functools import lru_cache
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env" if os.getenv("ENVIRONMENT") != "test" else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "TikTok Live MCP"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"

    # TikTok
    tiktok_session_id: Optional[str] = Field(
        default=None,
        description="TikTok session cookie, passed to the client unchanged",
    )
    tiktok_target_idc: Optional[str] = Field(
        default=None,
        description="tt-target-idc cookie sent with the session id",
    )
    fetch_room_info_on_connect: bool = True
    process_initial_data: bool = True

    # Subscriptions
    history_capacity: int = Field(default=100, gt=0)
    default_history_count: int = Field(default=10, ge=0)
    max_reconnect_attempts: int = Field(default=5, ge=0)
    reconnect_delay_seconds: float = Field(default=5.0, ge=0)
    connect_timeout_seconds: float = Field(default=30.0, gt=0)

    # Media processes
    ffplay_path: str = "ffplay"
    ffmpeg_path: str = "ffmpeg"

    # Metrics
    enable_metrics: bool = False
    metrics_port: int = 9464

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v):
        level = str(v or "INFO").upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level

    def get_source_options(self) -> Dict[str, Any]:
        """Options handed to every event source."""
        options: Dict[str, Any] = {
            "fetch_room_info": self.fetch_room_info_on_connect,
            "process_initial_data": self.process_initial_data,
        }
        if self.tiktok_session_id:
            options["session_id"] = self.tiktok_session_id
            options["tt_target_idc"] = self.tiktok_target_idc
        return options


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
