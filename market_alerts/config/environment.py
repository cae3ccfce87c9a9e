"""Environment variable loading and validation."""

import os
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/market_alerts.db"
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EnvironmentConfig:
    """Environment variable configuration holder.

    Holds the SMTP credentials, so its repr never shows the password or the
    pack signing secret.
    """

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_pass: str,
        smtp_from_email: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
        log_level: Optional[str] = None,
        database_url: Optional[str] = None,
        pack_signing_secret: Optional[str] = None,
    ):
        """Initialize environment configuration."""
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_from_email = smtp_from_email
        self.smtp_sender_name = smtp_sender_name or "Market Alerts"
        self.log_level = log_level
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.pack_signing_secret = pack_signing_secret or None

    @property
    def sender_email(self) -> str:
        """Envelope sender: SMTP_FROM_EMAIL, else the SMTP login name."""
        return self.smtp_from_email or self.smtp_user

    @property
    def implicit_tls(self) -> bool:
        """Port 465 speaks TLS from the first byte; every other port uses STARTTLS."""
        return self.smtp_port == 465

    def __repr__(self) -> str:
        secret = "'***'" if self.pack_signing_secret else "None"
        return (
            f"EnvironmentConfig(smtp_host={self.smtp_host!r}, smtp_port={self.smtp_port!r}, "
            f"smtp_user={self.smtp_user!r}, smtp_pass='***', sender_email={self.sender_email!r}, "
            f"database_url={self.database_url!r}, pack_signing_secret={secret})"
        )


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Required environment variables:
    - SMTP_HOST: SMTP server hostname
    - SMTP_PORT: SMTP server port (1-65535; 465 means implicit TLS)
    - SMTP_USER: SMTP authentication username
    - SMTP_PASS: SMTP authentication password

    Optional environment variables:
    - SMTP_FROM_EMAIL: Envelope/From address (default: SMTP_USER)
    - SMTP_SENDER_NAME: Display name for email sender
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - DATABASE_URL: Directory database URL (default: sqlite:///./data/market_alerts.db)
    - PACK_SIGNING_SECRET: HMAC secret required on URL pack sources

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors = []

    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")

    smtp_from_email = os.getenv("SMTP_FROM_EMAIL")
    smtp_sender_name = os.getenv("SMTP_SENDER_NAME")
    log_level = os.getenv("LOG_LEVEL")
    database_url = os.getenv("DATABASE_URL")
    pack_signing_secret = os.getenv("PACK_SIGNING_SECRET")

    for name, value in (
        ("SMTP_HOST", smtp_host),
        ("SMTP_PORT", smtp_port_str),
        ("SMTP_USER", smtp_user),
        ("SMTP_PASS", smtp_pass),
    ):
        if not value:
            errors.append(f"Missing required environment variable: {name}")

    smtp_port = None
    if smtp_port_str:
        try:
            smtp_port = int(smtp_port_str)
            if smtp_port < 1 or smtp_port > 65535:
                errors.append(
                    f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535."
                )
        except ValueError:
            errors.append(
                f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer."
            )

    sender = smtp_from_email or smtp_user
    if sender and not _is_valid_email(sender):
        source = "SMTP_FROM_EMAIL" if smtp_from_email else "SMTP_USER"
        errors.append(
            f"Invalid sender address in {source}: '{sender}'. Set SMTP_FROM_EMAIL to a valid address."
        )

    if smtp_sender_name and ("\r" in smtp_sender_name or "\n" in smtp_sender_name):
        errors.append("SMTP_SENDER_NAME must not contain line breaks")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Ensure SMTP_HOST, SMTP_PORT, SMTP_USER and SMTP_PASS are set",
                "Verify SMTP_PORT is a number between 1 and 65535",
            ],
        )

    return EnvironmentConfig(
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_from_email=smtp_from_email,
        smtp_sender_name=smtp_sender_name,
        log_level=log_level,
        database_url=database_url,
        pack_signing_secret=pack_signing_secret,
    )


def _is_valid_email(email: str) -> bool:
    """Check address syntax with email-validator (no DNS lookups)."""
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True
