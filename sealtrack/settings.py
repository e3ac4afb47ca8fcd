"""Application settings and configuration (Pydantic v2)."""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings."""

    # Database (Docker uses host "db")
    database_url: str = Field(
        default="postgresql://sealtrack_user:sealtrack_pass@db:5432/sealtrack",
        description="SQLAlchemy DSN",
    )

    # Evidence storage
    evidence_dir: str = Field(default="evidence", description="Local evidence root")

    # Geofence
    default_geofence_radius_m: int = Field(default=100)
    min_geofence_radius_m: int = Field(default=10)
    max_geofence_radius_m: int = Field(default=1000)

    # Anomaly rules
    travel_time_tolerance: float = Field(
        default=0.5, ge=0, description="Allowed overrun of expected travel time"
    )
    default_expected_travel_minutes: int = Field(default=30, ge=1)
    average_travel_speed_kmh: float = Field(default=30.0, gt=0)
    double_shift_threshold_hours: float = Field(default=6.0, gt=0)

    # HMAC for mobile ingestion
    api_key_app: Optional[str] = Field(default=None)
    signing_secret: Optional[str] = Field(default=None)
    require_signed_submissions: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # Bulk/admin harness
    bulk_max_retries: int = Field(default=3, ge=1)
    bulk_retry_base_seconds: float = Field(default=0.5, ge=0)

    # Pydantic v2 settings
    model_config = SettingsConfigDict(
        env_file=".env",               # also reads OS env from Docker Compose
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="",                 # no prefix
    )

    # ---- Backwards-compat properties (UPPERCASE) ----
    @property
    def API_KEY_APP(self) -> Optional[str]:
        return self.api_key_app

    @property
    def SIGNING_SECRET(self) -> Optional[str]:
        return self.signing_secret


# Global settings instance
settings = Settings()
