"""Application configuration management using Pydantic Settings.

This module loads and validates environment variables using Pydantic Settings.
All configuration is loaded from environment variables or a .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        database_url: Database connection string
        twilio_account_sid: Twilio account SID (optional, sending is skipped without it)
        twilio_auth_token: Twilio authentication token
        twilio_phone_number: Twilio sender number in E.164 format
        token_secret: Secret used to sign Step-B capability tokens
        token_ttl_days: Validity window of Step-B tokens
        form_base_url: Public base URL used to build Step-B links
        max_nudges: Maximum number of manual Step-B link resends
        reminder_days: Comma-separated day offsets for Step-B reminders
        stuck_survey_hours: Inactivity threshold for SMS survey reminders
        survey_max_nudges: Cap on SMS survey reminders (unset = unlimited)
        reminder_interval_seconds: Period of the reminder scheduler loop
        admin_api_key: Shared secret for the admin endpoints
        s3_bucket: Bucket for Step-B images (optional, uploads run in dev mode without it)
    """

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./intake.db",
        description="Database connection string"
    )
    database_pool_size: int = Field(
        default=5,
        description="Number of database connections in pool"
    )
    database_max_overflow: int = Field(
        default=10,
        description="Maximum overflow connections beyond pool size"
    )

    # Twilio Configuration
    twilio_account_sid: str = Field(
        default="",
        description="Twilio account SID"
    )
    twilio_auth_token: str = Field(
        default="",
        description="Twilio authentication token"
    )
    twilio_phone_number: str = Field(
        default="",
        description="Twilio phone number in E.164 format"
    )
    verify_twilio_signature: bool = Field(
        default=False,
        description="Reject inbound SMS webhooks without a valid Twilio signature"
    )

    # Application Configuration
    environment: str = Field(
        default="development",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    questions_file: str = Field(
        default="./questions/intake.yaml",
        description="Path to the SMS question set YAML file"
    )
    form_base_url: str = Field(
        default="http://localhost:3000",
        description="Public base URL of the Step-B form"
    )
    calendly_url: str = Field(
        default="https://calendly.com/admin-ethosh/doctor-appointment",
        description="Appointment scheduling link sent after completion"
    )

    # Step-B Token Configuration
    token_secret: str = Field(
        default="dev-token-secret",
        description="Secret for signing Step-B capability tokens"
    )
    token_ttl_days: int = Field(
        default=7,
        ge=1,
        description="Step-B token validity window in days"
    )
    max_nudges: int = Field(
        default=3,
        ge=0,
        description="Maximum number of Step-B link resends"
    )

    # Reminder Configuration
    reminder_days: str = Field(
        default="3,7,30,60",
        description="Comma-separated day offsets for Step-B reminders"
    )
    reminder_3days: Optional[int] = Field(default=None)
    reminder_7days: Optional[int] = Field(default=None)
    reminder_1month: Optional[int] = Field(default=None)
    reminder_2months: Optional[int] = Field(default=None)
    stuck_survey_hours: float = Field(
        default=24,
        gt=0,
        description="Hours of inactivity before an SMS survey reminder"
    )
    survey_max_nudges: Optional[int] = Field(
        default=None,
        ge=0,
        description="Cap on SMS survey reminders per stall (unset = unlimited)"
    )
    reminder_interval_seconds: int = Field(
        default=3600,
        ge=1,
        description="Seconds between reminder scheduler passes"
    )
    reminder_enabled: bool = Field(
        default=True,
        description="Run the reminder scheduler inside the web process"
    )
    reminder_dry_run: bool = Field(
        default=False,
        description="Log reminders instead of sending them"
    )

    # Security Configuration
    admin_api_key: Optional[str] = Field(
        default=None,
        description="Shared secret for admin endpoints"
    )
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of initially allowed CORS origins"
    )
    cors_persist: bool = Field(
        default=False,
        description="Persist CORS allowlist changes to disk"
    )
    cors_persist_path: str = Field(
        default="./data/cors-allowlist.json",
        description="File used when cors_persist is enabled"
    )

    # Object Storage Configuration
    s3_bucket: Optional[str] = Field(
        default=None,
        description="Bucket for Step-B images; unset keeps the local no-op store"
    )
    s3_region: Optional[str] = Field(
        default=None,
        description="AWS region of the image bucket"
    )
    s3_presign_expires_seconds: int = Field(
        default=900,
        ge=1,
        description="Lifetime of presigned upload URLs"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v_upper

    @field_validator("twilio_phone_number")
    @classmethod
    def validate_phone_number(cls, v: str) -> str:
        """Validate phone number is in E.164 format when provided."""
        if v and not v.startswith("+"):
            raise ValueError("Phone number must be in E.164 format (e.g., +15551234567)")
        return v

    @field_validator("form_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("s3_bucket", "s3_region")
    @classmethod
    def strip_quotes(cls, v: Optional[str]) -> Optional[str]:
        """Drop surrounding quotes and whitespace; blank means unset."""
        if v is None:
            return None
        return v.strip().strip('"').strip() or None

    @property
    def s3_configured(self) -> bool:
        return bool(self.s3_bucket)

    def get_reminder_days(self) -> List[int]:
        """Resolve the ascending Step-B reminder schedule.

        The explicit REMINDER_3DAYS / REMINDER_7DAYS / REMINDER_1MONTH /
        REMINDER_2MONTHS variables win when any of them is set; otherwise
        REMINDER_DAYS is parsed, skipping entries that are not integers.
        """
        explicit = [
            d for d in (
                self.reminder_3days,
                self.reminder_7days,
                self.reminder_1month,
                self.reminder_2months,
            )
            if d is not None
        ]
        if explicit:
            return sorted(explicit)

        days = []
        for part in self.reminder_days.split(","):
            part = part.strip()
            try:
                days.append(int(part))
            except ValueError:
                continue
        return sorted(days)

    def get_cors_origins_list(self) -> List[str]:
        """Parse cors_origins into a list, falling back to the form base URL."""
        raw = self.cors_origins or self.form_base_url
        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    @property
    def twilio_configured(self) -> bool:
        """Check if all Twilio credentials are present."""
        return bool(
            self.twilio_account_sid
            and self.twilio_auth_token
            and self.twilio_phone_number
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings singleton

    Note:
        Uses lru_cache to ensure settings are only loaded once
        and shared across the application.
    """
    return Settings()
