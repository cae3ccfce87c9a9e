"""Configuration management module for Market Alerts."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, validate_config_file
from .models import (
    AdvancedConfig,
    AppConfig,
    DeliveryConfig,
    DigestConfig,
    DirectoryConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    PackConfig,
    SMTPConfig,
)

__all__ = [
    # Main loader functions
    "load_config",
    "validate_config_file",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "PackConfig",
    "DirectoryConfig",
    "SMTPConfig",
    "DeliveryConfig",
    "DigestConfig",
    "LoggingConfig",
    "AdvancedConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
