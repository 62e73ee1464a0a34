"""Configuration management for Clinic OS."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from clinic_os.scheduling.models import PeakHours


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Clinic backend (work-period and booking stores)
    api_base_url: str = Field(
        default="http://localhost:5000",
        description="Base URL of the clinic backend",
    )
    api_token: str = Field(
        default="",
        description="Bearer token forwarded to the clinic backend",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for a single availability fetch",
    )

    # Availability fetch controller
    debounce_ms: int = Field(
        default=500,
        ge=0,
        description="Quiet period before a parameter change fires a request",
    )
    breaker_failure_threshold: int = Field(
        default=3,
        ge=1,
        description="Consecutive failures that open the circuit",
    )
    breaker_reset_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Seconds after the last failure before a trial request is allowed",
    )
    slot_cache_ttl_seconds: float = Field(
        default=180.0,
        ge=0,
        description="How long fetched slots are served from cache; 0 disables caching",
    )

    # Business rules
    peak_start_hour: int = Field(default=17, ge=0, le=23)
    peak_end_hour: int = Field(default=21, ge=1, le=24)
    min_break_minutes: int = Field(
        default=30,
        ge=0,
        description="Shorter gaps between two shifts are flagged",
    )

    # Drafts
    draft_dir: Path = Field(
        default=Path("./data/drafts"),
        description="Directory for persisted booking drafts",
    )

    # Observability
    observability_enabled: bool = Field(default=True)
    observability_log_dir: Path = Field(default=Path("./data/logs"))

    # API Settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080)

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    @model_validator(mode="after")
    def _check_peak_window(self) -> "Settings":
        if self.peak_start_hour >= self.peak_end_hour:
            raise ValueError(
                f"PEAK_START_HOUR ({self.peak_start_hour}) must be before "
                f"PEAK_END_HOUR ({self.peak_end_hour})"
            )
        return self

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000

    @property
    def peak_hours(self) -> PeakHours:
        """Peak window as a value object for the slot generator."""
        return PeakHours(start_hour=self.peak_start_hour, end_hour=self.peak_end_hour)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
