"""Tests for configuration loading and validation."""

import textwrap
from pathlib import Path

import pytest

from market_alerts.config import (
    ConfigurationError,
    LogFormat,
    load_config,
    validate_config_file,
)
from market_alerts.config.duration import (
    DurationParseError,
    format_duration,
    parse_duration,
    validate_duration_range,
)
from market_alerts.config.environment import EnvironmentConfig, load_environment_config
from market_alerts.config.loader import parse_app_config
from market_alerts.config.validators import check_for_warnings

VALID_CONFIG = textwrap.dedent(
    """
    pack:
      source: ./packs/latest.json
      signature_tolerance: 2m
    digest:
      brand_name: Market Alerts
      site_url: https://market.example.com/
      repo_url: https://github.com/example/market-data
    directory:
      page_size: 50
    delivery:
      time_budget_seconds: 60
      max_reported_failures: 10
    scan_interval: 30m
    logging:
      level: DEBUG
      format: json
    """
)

MINIMAL_CONFIG = textwrap.dedent(
    """
    pack:
      source: pack.json
    digest:
      site_url: https://market.example.com
    """
)


def write_config(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(content)
    return path


class TestConfigurationLoading:
    """Test configuration loading from YAML files."""

    def test_load_valid_config(self, tmp_path, mock_env_vars):
        """Test loading a complete configuration file."""
        app_config, env_config = load_config(write_config(tmp_path, VALID_CONFIG))

        assert app_config.pack.source == "./packs/latest.json"
        assert app_config.pack.signature_tolerance_seconds == 120
        assert app_config.digest.site_url == "https://market.example.com"
        assert app_config.directory.page_size == 50
        assert app_config.directory.email_prefix == "auth/email/"
        assert app_config.delivery.time_budget_seconds == 60
        assert app_config.scan_interval_seconds == 1800
        assert app_config.logging.level == "DEBUG"
        assert app_config.logging.format == LogFormat.JSON.value

        assert env_config.smtp_host == "smtp.test.com"
        assert env_config.smtp_port == 587

    def test_load_minimal_config(self, tmp_path, mock_env_vars):
        """Test that defaults fill every optional section."""
        with pytest.warns(UserWarning, match="repo_url"):
            app_config, _ = load_config(write_config(tmp_path, MINIMAL_CONFIG))

        assert app_config.digest.brand_name == "Market Alerts"
        assert app_config.digest.repo_url is None
        assert app_config.scan_interval_seconds == 900
        assert app_config.pack.signature_tolerance_seconds == 300
        assert app_config.pack.max_bytes == 20 * 1024 * 1024
        assert app_config.smtp.ehlo_name == "market-alerts.local"
        assert app_config.delivery.max_reported_failures == 25
        assert app_config.advanced.user_agent == "MarketAlerts/1.0"

    def test_pack_source_override(self, tmp_path, mock_env_vars):
        """Test that the command line pack source wins over the file."""
        app_config, _ = load_config(write_config(tmp_path, VALID_CONFIG), pack_source="https://packs.example.com/x.json")
        assert app_config.pack.source == "https://packs.example.com/x.json"
        assert app_config.pack.signature_tolerance == "2m"

    def test_config_file_not_found(self, mock_env_vars):
        """Test error when config file doesn't exist."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(Path("nonexistent.yaml"))
        assert "not found" in str(exc_info.value)

    def test_empty_config(self, tmp_path, mock_env_vars):
        """Test error for an empty file."""
        with pytest.raises(ConfigurationError, match="empty"):
            load_config(write_config(tmp_path, ""))

    def test_invalid_yaml(self, tmp_path, mock_env_vars):
        """Test error for malformed YAML."""
        with pytest.raises(ConfigurationError, match="Failed to parse YAML"):
            load_config(write_config(tmp_path, "pack: [unclosed"))

    def test_not_a_mapping(self, tmp_path, mock_env_vars):
        """Test error when the document is a list."""
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(write_config(tmp_path, "- a\n- b\n"))

    def test_validate_config_file(self, tmp_path, capsys):
        """Test file-only validation without environment variables."""
        assert validate_config_file(write_config(tmp_path, VALID_CONFIG)) is True
        assert validate_config_file(write_config(tmp_path, "pack: {}\n")) is False
        assert "validation failed" in capsys.readouterr().out


class TestConfigValidation:
    """Test schema validation errors."""

    def test_missing_sections(self):
        """Test that pack and digest are required."""
        with pytest.raises(ConfigurationError) as exc_info:
            parse_app_config({"scan_interval": "15m"})

        errors = exc_info.value.errors
        assert "Missing required field: pack" in errors
        assert "Missing required field: digest" in errors

    def test_site_url_must_be_http(self):
        """Test URL scheme validation."""
        with pytest.raises(ConfigurationError, match="http"):
            parse_app_config({"pack": {"source": "p.json"}, "digest": {"site_url": "ftp://x"}})

    def test_brand_name_single_line(self):
        """Test that brand names are collapsed to one line."""
        config = parse_app_config(
            {"pack": {"source": "p.json"}, "digest": {"site_url": "https://x.com", "brand_name": "A\r\nB"}}
        )
        assert config.digest.brand_name == "A B"

    @pytest.mark.parametrize("interval", ["1m", "2d", "nonsense"])
    def test_scan_interval_bounds(self, interval):
        """Test scan interval format and range."""
        with pytest.raises(ConfigurationError):
            parse_app_config(
                {"pack": {"source": "p.json"}, "digest": {"site_url": "https://x.com"}, "scan_interval": interval}
            )

    def test_connect_timeout_within_budget(self):
        """Test that the connect timeout must fit in the delivery budget."""
        with pytest.raises(ConfigurationError, match="connect_timeout"):
            parse_app_config(
                {
                    "pack": {"source": "p.json"},
                    "digest": {"site_url": "https://x.com"},
                    "smtp": {"connect_timeout": 30},
                    "delivery": {"time_budget_seconds": 20},
                }
            )

    def test_ehlo_name_single_token(self):
        """Test EHLO name validation."""
        with pytest.raises(ConfigurationError, match="ehlo_name"):
            parse_app_config(
                {"pack": {"source": "p.json"}, "digest": {"site_url": "https://x.com"}, "smtp": {"ehlo_name": "a b"}}
            )

    def test_error_message_lists_suggestions(self):
        """Test ConfigurationError formatting."""
        error = ConfigurationError("Broken", errors=["first", "second"], suggestions=["fix it"])
        text = str(error)
        assert "  1. first" in text
        assert "  2. second" in text
        assert "  - fix it" in text


class TestWarnings:
    """Test non-fatal configuration warnings."""

    def test_plain_http_sources(self):
        """Test warnings for plain HTTP pack and site URLs."""
        warnings = check_for_warnings(
            {
                "pack": {"source": "http://packs.example.com/p.json"},
                "digest": {"site_url": "http://market.example.com", "repo_url": "https://github.com/x/y"},
            }
        )
        assert len(warnings) == 2
        assert "plain HTTP" in warnings[0]
        assert "not HTTPS" in warnings[1]

    def test_budget_warnings(self):
        """Test small page size and step timeout warnings."""
        warnings = check_for_warnings(
            {
                "digest": {"repo_url": "https://github.com/x/y"},
                "directory": {"page_size": 5},
                "smtp": {"command_timeout": 200},
                "delivery": {"time_budget_seconds": 60},
            }
        )
        assert any("page_size" in w for w in warnings)
        assert any("command_timeout" in w for w in warnings)

    def test_clean_config(self):
        """Test that a secure config has no warnings."""
        assert check_for_warnings(
            {"pack": {"source": "p.json"}, "digest": {"site_url": "https://x.com", "repo_url": "https://g.com/r"}}
        ) == []


class TestDurationParsing:
    """Test duration string parsing."""

    @pytest.mark.parametrize(
        "value,seconds",
        [("30s", 30), ("15m", 900), ("1h", 3600), ("1h30m", 5400), ("1d", 86400), ("PT15M", 900), ("P1D", 86400),
         ("PT1H30M", 5400), ("pt30s", 30)],
    )
    def test_valid_durations(self, value, seconds):
        """Test human-readable and ISO-8601 forms."""
        assert parse_duration(value) == seconds

    @pytest.mark.parametrize("value", ["", "15", "m15", "1x", "P", "PT", "0m", "1.5h"])
    def test_invalid_durations(self, value):
        """Test malformed and zero durations."""
        with pytest.raises(DurationParseError):
            parse_duration(value)

    def test_range(self):
        """Test range validation messages."""
        validate_duration_range(900)
        with pytest.raises(DurationParseError, match="too short"):
            validate_duration_range(60, label="Scan interval")
        with pytest.raises(DurationParseError, match="too long"):
            validate_duration_range(90000)

    def test_format_duration(self):
        """Test largest-unit formatting."""
        assert format_duration(86400) == "1 day"
        assert format_duration(900) == "15 minutes"
        assert format_duration(1) == "1 second"


class TestEnvironmentConfig:
    """Test environment variable loading."""

    def test_load(self, mock_env_vars, monkeypatch):
        """Test a complete environment."""
        monkeypatch.setenv("SMTP_FROM_EMAIL", "alerts@example.com")
        monkeypatch.setenv("PACK_SIGNING_SECRET", "topsecret")

        env = load_environment_config()

        assert env.sender_email == "alerts@example.com"
        assert env.pack_signing_secret == "topsecret"
        assert env.database_url == "sqlite:///./data/market_alerts.db"
        assert not env.implicit_tls

    def test_missing_required_env_var(self, monkeypatch):
        """Test that every missing variable is reported."""
        for name in ("SMTP_HOST", "SMTP_PORT", "SMTP_USER", "SMTP_PASS"):
            monkeypatch.delenv(name, raising=False)

        with pytest.raises(ConfigurationError) as exc_info:
            load_environment_config()

        assert len(exc_info.value.errors) == 4
        assert "Missing required environment variable: SMTP_HOST" in exc_info.value.errors

    @pytest.mark.parametrize("port", ["invalid", "0", "70000"])
    def test_invalid_smtp_port(self, mock_env_vars, monkeypatch, port):
        """Test port validation."""
        monkeypatch.setenv("SMTP_PORT", port)
        with pytest.raises(ConfigurationError, match="Invalid SMTP_PORT"):
            load_environment_config()

    def test_invalid_sender(self, mock_env_vars, monkeypatch):
        """Test that the sender must be an email address."""
        monkeypatch.setenv("SMTP_USER", "not-an-email")
        with pytest.raises(ConfigurationError, match="SMTP_USER"):
            load_environment_config()

    def test_sender_name_line_break(self, mock_env_vars, monkeypatch):
        """Test header injection through the sender name."""
        monkeypatch.setenv("SMTP_SENDER_NAME", "Alerts\r\nBcc: x@example.com")
        with pytest.raises(ConfigurationError, match="line breaks"):
            load_environment_config()

    def test_invalid_log_level(self, mock_env_vars, monkeypatch):
        """Test LOG_LEVEL validation."""
        monkeypatch.setenv("LOG_LEVEL", "LOUD")
        with pytest.raises(ConfigurationError, match="LOG_LEVEL"):
            load_environment_config()

    def test_repr_hides_secrets(self):
        """Test that credentials never appear in repr."""
        env = EnvironmentConfig("smtp.test", 465, "u@example.com", "hunter2", pack_signing_secret="s3")
        text = repr(env)
        assert "hunter2" not in text
        assert "pack_signing_secret='***'" in text
        assert env.implicit_tls


# Pytest fixtures
@pytest.fixture
def mock_env_vars(monkeypatch):
    """Mock required environment variables for testing."""
    monkeypatch.setenv("SMTP_HOST", "smtp.test.com")
    monkeypatch.setenv("SMTP_PORT", "587")
    monkeypatch.setenv("SMTP_USER", "user@test.com")
    monkeypatch.setenv("SMTP_PASS", "testpass123")
    for name in ("SMTP_FROM_EMAIL", "SMTP_SENDER_NAME", "LOG_LEVEL", "DATABASE_URL", "PACK_SIGNING_SECRET"):
        monkeypatch.delenv(name, raising=False)
