# src/config/settings.py — v3
"""Typed deployment settings loaded from .env via pydantic-settings.

Covers storage locations, snapshot versioning, chat defaults, the signed
image backend and logging. Per-run backend selection lives in AppConfig
(config/app_config.py), not here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # === Storage ===
    data_dir: Path = Path("./data")
    runs_dir: Path = Path("./runs")

    # === Snapshot versioning ===
    snapshot_git_enabled: bool = True
    snapshot_git_repo: Path = Path(".")

    # === Chat backends ===
    chat_temperature: float = 0.2
    chat_max_tokens: int = 2048
    chat_timeout_s: float = 120.0
    chat_max_concurrency: int = 2

    # === Image backend (signed, polled) ===
    image_host: str = "visual.volcengineapi.com"
    image_region: str = "cn-north-1"
    image_service: str = "cv"
    image_api_version: str = "2022-08-31"
    image_req_key: str = Field(
        default="jimeng_t2i_v40",
        validation_alias=AliasChoices("image_req_key", "volc_jimeng_req_key"),
    )
    image_poll_interval_s: float = 1.2
    image_poll_attempts: int = 20
    image_http_timeout_s: float = 30.0
    image_default_size: int = 1024

    # Credentials from the process environment (last resort)
    image_access_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "image_access_key", "volc_access_key_id", "volcengine_access_key_id",
        ),
    )
    image_secret_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "image_secret_key", "volc_secret_access_key", "volcengine_secret_access_key",
        ),
    )
    image_session_token: str = Field(
        default="",
        validation_alias=AliasChoices(
            "image_session_token",
            "volc_session_token",
            "volc_security_token",
            "x_security_token",
        ),
    )

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5
    # Per-run log file written next to the run's snapshots
    run_log_enabled: bool = False

    # --- Validators ---

    @field_validator("chat_max_concurrency")
    @classmethod
    def validate_chat_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("chat_max_concurrency must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.image_poll_attempts < 1:
            errors.append("IMAGE_POLL_ATTEMPTS must be >= 1")
        if self.image_poll_interval_s < 0:
            errors.append("IMAGE_POLL_INTERVAL_S must be >= 0")
        if self.image_http_timeout_s <= 0:
            errors.append("IMAGE_HTTP_TIMEOUT_S must be > 0")

        from docweaver.logging.handlers import parse_size

        try:
            parse_size(self.log_rotation)
        except ValueError as exc:
            errors.append(f"LOG_ROTATION: {exc}")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def config_file(self) -> Path:
        return self.data_dir / "config.json"

    @property
    def prompts_file(self) -> Path:
        return self.data_dir / "prompts.json"


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
