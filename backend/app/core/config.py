from functools import lru_cache
from typing import Any

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    extraction_backend: str = Field(
        default="gateway",
        description="Registered extraction backend used for slip recognition (gateway|edge)",
    )
    gateway_api_key: str | None = Field(
        default=None,
        description="API key for the OpenAI-compatible AI gateway",
    )
    gateway_base_url: AnyUrl | str = Field(
        default="https://ai.gateway.lovable.dev/v1",
        description="Base URL of the OpenAI-compatible AI gateway",
    )
    extraction_primary_model: str = Field(
        default="google/gemini-2.5-flash",
        description="Vision model used for the primary extraction attempt",
    )
    extraction_backup_model: str = Field(
        default="google/gemini-2.5-pro",
        description="Vision model used for the backup extraction attempt",
    )
    slip_parser_url: AnyUrl | str | None = Field(
        default=None,
        description="HTTP endpoint of the slip parser function (edge backend)",
    )
    slip_parser_api_key: str | None = Field(
        default=None,
        description="Bearer token sent to the slip parser function",
    )
    extraction_timeout_seconds: float = Field(
        default=8.0,
        description="Hard timeout applied to each extraction attempt",
        gt=0,
    )
    max_image_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest accepted slip image",
        ge=1,
    )
    min_image_bytes: int = Field(
        default=512,
        description="Images below this size are rejected as degenerate",
        ge=0,
    )
    submit_debounce_seconds: float = Field(
        default=0.5,
        description="Repeated submits for the same slot inside this window are dropped",
        ge=0,
    )
    coordinator_mode: str = Field(
        default="independent",
        description="Default job coordination mode for multi-leg tickets (exclusive|independent|concurrent)",
    )
    odd_tolerance: float = Field(
        default=0.02,
        description="Maximum distance between displayed and derived odd before the derived odd wins",
        ge=0,
    )
    odd_decimal_places: int = Field(
        default=2,
        description="Decimal places used when formatting a derived odd",
        ge=0,
        le=6,
    )
    date_warning_days: int = Field(
        default=30,
        description="Distance in days from now that raises a warning-level date anomaly",
        ge=1,
    )
    date_critical_days: int = Field(
        default=90,
        description="Distance in days from now that raises a critical date anomaly",
        ge=1,
    )
    date_min_operational_year: int = Field(
        default=2025,
        description="Dates before this year are always flagged as critical",
    )

    @field_validator("extraction_backend", "coordinator_mode", mode="before")
    @classmethod
    def _normalize_names(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("coordinator_mode")
    @classmethod
    def _validate_mode(cls, value: str) -> str:
        if value not in {"exclusive", "independent", "concurrent"}:
            raise ValueError(
                "COORDINATOR_MODE must be one of exclusive, independent, concurrent"
            )
        return value

    @field_validator("date_critical_days")
    @classmethod
    def _validate_thresholds(cls, value: int, info) -> int:
        warning = info.data.get("date_warning_days")
        if warning is not None and value < warning:
            raise ValueError("DATE_CRITICAL_DAYS must not be lower than DATE_WARNING_DAYS")
        return value

    @property
    def image_size_limit_mb(self) -> int:
        return self.max_image_bytes // (1024 * 1024)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
