"""Central configuration for the eventgate PIN service."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_ENV_FILE = ROOT_DIR / ".env"


# ============================================================
# Nested Configuration Classes
# ============================================================

class PinTimings(BaseModel):
    """PIN pad pacing (milliseconds)."""
    verify_delay_ms: int = Field(500, ge=0, description="Pause before a completed entry is compared")
    enroll_delay_ms: int = Field(300, ge=0, description="Pause before a new PIN is handed to the host")
    error_display_ms: int = Field(2000, ge=0, description="How long the mismatch error stays visible")

    @property
    def verify_delay(self) -> float:
        return self.verify_delay_ms / 1000

    @property
    def enroll_delay(self) -> float:
        return self.enroll_delay_ms / 1000

    @property
    def error_display(self) -> float:
        return self.error_display_ms / 1000


class PerformanceSettings(BaseModel):
    """Queue tuning."""
    ui_event_queue_size: int = Field(16, ge=1, description="Max buffered UI events per subscriber")


class Settings(BaseSettings):
    """Environment-driven settings for the gate service."""

    # HTTP Server
    controller_host: str = Field("0.0.0.0", description="Host interface for local FastAPI server")
    controller_port: int = Field(5000, description="Port for FastAPI server")

    # Event document store
    events_api_url: Optional[str] = Field(None, description="Document API base URL; in-memory store when unset")
    events_api_timeout: float = Field(15.0, description="Document API request timeout (seconds)")

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_directory: Path = Field(ROOT_DIR / "logs", description="Log directory path")
    log_retention_days: int = Field(14, description="Number of log files to retain")

    # Nested Configuration Objects
    timings: PinTimings = Field(default_factory=PinTimings, description="PIN pad pacing")
    performance: PerformanceSettings = Field(default_factory=PerformanceSettings, description="Performance tuning")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("events_api_url", mode="before")
    @classmethod
    def _blank_url_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    model_config = SettingsConfigDict(
        env_file=str(DEFAULT_ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings(override_env_file: Optional[Path] = None) -> Settings:
    """Cached Settings instance; accepts optional env override for tests."""

    if override_env_file:
        return Settings(_env_file=str(override_env_file))
    return Settings()
