"""Application configuration and settings management."""

from typing import Any

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Delivery Dispatch & Settlement API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root log level for the dispatch loggers.")
    currency: str = Field(default="MAD", min_length=3, max_length=3)
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Travel model
    default_speed_kmh: float = Field(default=22.0, gt=0.0)
    road_winding_factor: float = Field(
        default=1.3,
        ge=1.0,
        description="Multiplier turning straight-line distance into an approximate street distance.",
    )
    restaurant_prep_buffer_minutes: float = Field(default=5.0, ge=0.0)

    # Route optimizer
    max_stops_per_route: int = Field(default=8, ge=1)
    service_time_per_stop_minutes: float = Field(default=3.0, ge=0.0)
    two_opt_max_iterations: int = Field(default=1000, ge=0)
    two_opt_min_improvement_km: float = Field(default=0.01, ge=0.0)

    # Surge and fees (amounts in minor currency units)
    surge_base_multiplier: float = Field(default=1.0, ge=1.0)
    surge_max_multiplier: float = Field(default=3.0, ge=1.0)
    surge_demand_threshold: float = Field(default=0.8, ge=0.0)
    surge_supply_threshold: float = Field(default=0.3, ge=0.0)
    base_delivery_fee: int = Field(default=1000, ge=0)
    per_km_fee: int = Field(default=300, ge=0)
    min_delivery_fee: int = Field(default=1000, ge=0)
    max_delivery_fee: int = Field(default=5000, ge=0)
    peak_fee_multiplier: float = Field(default=1.25, ge=1.0)

    # Settlement
    platform_fee: int = Field(default=200, ge=0)
    vat_rate: float = Field(default=0.2, ge=0.0, le=1.0)
    daily_incentive_budget: int = Field(default=5_000_000, ge=0)

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator("max_delivery_fee")
    @classmethod
    def _fee_band_ordered(cls, value: int, info) -> int:
        minimum = info.data.get("min_delivery_fee", 0)
        if value < minimum:
            raise ValueError("max_delivery_fee must be >= min_delivery_fee")
        return value


settings = Settings()
