"""Application settings loaded from environment."""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly typed settings for the signal engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    pghost: Optional[str] = Field(default=None, alias="PGHOST")
    pgport: int = Field(default=5432, alias="PGPORT")
    pguser: Optional[str] = Field(default=None, alias="PGUSER")
    pgpassword: Optional[str] = Field(default=None, alias="PGPASSWORD")
    pgdatabase: Optional[str] = Field(default=None, alias="PGDATABASE")

    # Duplicate candidates
    dedupe_radius_meters: float = Field(default=15.0, alias="DEDUPE_RADIUS_METERS")
    dedupe_lookback_days: int = Field(default=30, alias="DEDUPE_LOOKBACK_DAYS")
    dedupe_max_candidates: int = Field(default=5, alias="DEDUPE_MAX_CANDIDATES")

    # Same-bike signal
    signal_match_radius_meters: float = Field(default=10.0, alias="SIGNAL_MATCH_RADIUS_METERS")
    signal_candidate_lookback_days: int = Field(
        default=180, alias="SIGNAL_CANDIDATE_LOOKBACK_DAYS"
    )
    signal_reconfirmation_gap_days: int = Field(
        default=28, alias="SIGNAL_RECONFIRMATION_GAP_DAYS"
    )
    strong_signal_min_unique_reporters: int = Field(
        default=2, alias="STRONG_SIGNAL_MIN_UNIQUE_REPORTERS"
    )

    # Abuse controls
    report_rate_limit_requests: int = Field(default=8, alias="REPORT_RATE_LIMIT_REQUESTS")
    report_rate_limit_window_seconds: int = Field(
        default=300, alias="REPORT_RATE_LIMIT_WINDOW_SECONDS"
    )
    fingerprint_burst_threshold: int = Field(default=4, alias="FINGERPRINT_BURST_THRESHOLD")

    # Tracking links
    app_signing_secret: str = Field(
        default="local-development-secret-change-me",
        alias="APP_SIGNING_SECRET",
        min_length=16,
    )
    tracking_link_ttl_days: int = Field(default=90, alias="TRACKING_LINK_TTL_DAYS")
    public_base_url: str = Field(default="https://zwerffiets.org", alias="PUBLIC_BASE_URL")

    # Retention and exports
    photo_retention_days: int = Field(default=365, alias="PHOTO_RETENTION_DAYS")
    export_timezone: str = Field(default="Europe/Amsterdam", alias="EXPORT_TIMEZONE")

    # Runtime
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    run_env: str = Field(default="local", alias="RUN_ENV")

    @field_validator("public_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def has_database(self) -> bool:
        """Return True when a Postgres connection can be built."""
        return bool(self.database_url) or all(
            [self.pghost, self.pguser, self.pgpassword, self.pgdatabase]
        )

    def get_database_url(self) -> str:
        """Return a usable database URL or raise."""
        if self.database_url:
            return self.database_url

        if all([self.pghost, self.pguser, self.pgpassword, self.pgdatabase]):
            return (
                "postgresql://"
                f"{self.pguser}:{self.pgpassword}@{self.pghost}:{self.pgport}/"
                f"{self.pgdatabase}"
            )

        raise ValueError("DATABASE_URL or PG* env vars must be set")

    def build_public_url(self, path: str) -> str:
        """Join the public base URL with an absolute path."""
        normalized = path if path.startswith("/") else f"/{path}"
        return f"{self.public_base_url}{normalized}"
