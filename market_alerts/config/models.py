"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _duration_seconds(v: str, min_seconds: int, max_seconds: int, label: str) -> int:
    """Parse a duration string and check its range, raising ValueError for pydantic."""
    try:
        seconds = parse_duration(v)
        validate_duration_range(seconds, min_seconds=min_seconds, max_seconds=max_seconds, label=label)
        return seconds
    except DurationParseError as e:
        raise ValueError(str(e)) from e


class PackConfig(BaseModel):
    """Where the event pack comes from and how it is checked."""

    source: str = Field(..., min_length=1, description="File path or http(s) URL of the event pack")
    signature_tolerance: str = Field(
        "5m", description="Maximum age/skew of a signed pack (URL sources only)"
    )
    max_bytes: int = Field(
        20 * 1024 * 1024, ge=1024, le=200 * 1024 * 1024, description="Largest accepted pack body"
    )

    # Computed field
    signature_tolerance_seconds: Optional[int] = None

    @field_validator("source")
    @classmethod
    def strip_source(cls, v: str) -> str:
        """Strip whitespace from the source."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("pack.source cannot be empty")
        return stripped

    @field_validator("signature_tolerance")
    @classmethod
    def validate_signature_tolerance(cls, v: str) -> str:
        """Tolerance must be between 10 seconds and 1 hour."""
        _duration_seconds(v, min_seconds=10, max_seconds=3600, label="Signature tolerance")
        return v

    @model_validator(mode="after")
    def compute_tolerance_seconds(self):
        """Compute signature_tolerance_seconds from the duration string."""
        self.signature_tolerance_seconds = parse_duration(self.signature_tolerance)
        return self


class DirectoryConfig(BaseModel):
    """Account directory scan settings."""

    email_prefix: str = Field("auth/email/", min_length=1, description="Key prefix of the email index")
    page_size: int = Field(100, ge=1, le=1000, description="Keys requested per list call")


class SMTPConfig(BaseModel):
    """SMTP protocol settings (credentials come from the environment)."""

    ehlo_name: str = Field("market-alerts.local", min_length=1, description="Client name sent with EHLO")
    connect_timeout: int = Field(15, ge=1, le=120, description="TCP connect timeout (seconds)")
    command_timeout: int = Field(30, ge=1, le=300, description="Timeout for one protocol step (seconds)")

    @field_validator("ehlo_name")
    @classmethod
    def validate_ehlo_name(cls, v: str) -> str:
        """EHLO name must be a single token."""
        stripped = v.strip()
        if not stripped or any(ch.isspace() for ch in stripped):
            raise ValueError("ehlo_name must be a single hostname without whitespace")
        return stripped


class DeliveryConfig(BaseModel):
    """Per-run delivery settings."""

    time_budget_seconds: int = Field(
        120, ge=5, le=900, description="Time allowed for one recipient's whole SMTP exchange"
    )
    max_reported_failures: int = Field(
        25, ge=1, le=1000, description="Failures listed in the delivery report"
    )


class DigestConfig(BaseModel):
    """Branding and links used in digest emails."""

    brand_name: str = Field("Market Alerts", min_length=1, description="Name shown in subject and header")
    site_url: str = Field(..., description="Base URL for item links (<site_url>/#/item/<sku>)")
    repo_url: Optional[str] = Field(
        None, description="Repository URL; enables the commit link when the pack has a range"
    )

    @field_validator("site_url", "repo_url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        """URLs must be http(s) and are stored without a trailing slash."""
        if v is None:
            return v
        stripped = v.strip().rstrip("/")
        if not stripped.startswith(("http://", "https://")):
            raise ValueError(f"URL must start with http:// or https://, got: {v}")
        return stripped

    @field_validator("brand_name")
    @classmethod
    def validate_brand_name(cls, v: str) -> str:
        """Brand name goes into the subject line, so it must be a single line."""
        stripped = " ".join(v.split())
        if not stripped:
            raise ValueError("brand_name cannot be empty")
        return stripped


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AdvancedConfig(BaseModel):
    """Advanced runtime settings."""

    http_request_timeout: int = Field(
        30, ge=5, le=300, description="Request timeout for fetching URL pack sources (seconds)"
    )
    database_timeout: int = Field(
        30, ge=1, le=300, description="Connect and statement timeout for directory reads (seconds)"
    )
    user_agent: str = Field(
        "MarketAlerts/1.0",
        min_length=1,
        description="User-Agent string for HTTP requests",
    )

    @field_validator("user_agent")
    @classmethod
    def strip_user_agent(cls, v: str) -> str:
        """Strip whitespace from user agent."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("user_agent cannot be empty")
        return stripped


class AppConfig(BaseModel):
    """Root configuration object for Market Alerts."""

    pack: PackConfig = Field(..., description="Event pack source")
    digest: DigestConfig = Field(..., description="Digest branding and links")
    directory: DirectoryConfig = Field(default_factory=DirectoryConfig, description="Directory scan")
    smtp: SMTPConfig = Field(default_factory=SMTPConfig, description="SMTP protocol settings")
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig, description="Delivery settings")
    scan_interval: str = Field("15m", description="Interval between scheduled runs")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    advanced: AdvancedConfig = Field(
        default_factory=AdvancedConfig, description="Advanced runtime settings"
    )

    # Computed field
    scan_interval_seconds: Optional[int] = None

    @field_validator("scan_interval")
    @classmethod
    def validate_scan_interval(cls, v: str) -> str:
        """Scheduled runs are between 5 minutes and 24 hours apart."""
        _duration_seconds(v, min_seconds=300, max_seconds=86400, label="Scan interval")
        return v

    @model_validator(mode="after")
    def validate_budgets_and_compute_fields(self):
        """Check timeouts fit in the delivery budget and compute derived fields."""
        if self.smtp.connect_timeout >= self.delivery.time_budget_seconds:
            raise ValueError(
                "smtp.connect_timeout must be shorter than delivery.time_budget_seconds"
            )

        self.scan_interval_seconds = parse_duration(self.scan_interval)
        return self
