"""Duration parsing utilities for configuration.

Durations are written either human-readable ("15m", "1h30m") or as
ISO-8601 ("PT15M", "P1D").
"""

import re

UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

ISO8601_PATTERN = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$")
HUMAN_PART = re.compile(r"(\d+)([smhd])")
HUMAN_PATTERN = re.compile(r"^(?:\d+[smhd])+$")


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed or is out of range."""

    pass


def parse_duration(duration_str: str) -> int:
    """
    Parse a duration string to seconds.

    Args:
        duration_str: Duration string to parse

    Returns:
        Duration in seconds (always positive)

    Raises:
        DurationParseError: If the duration string is invalid or zero

    Examples:
        >>> parse_duration("15m")
        900
        >>> parse_duration("PT1H")
        3600
        >>> parse_duration("1h30m")
        5400
    """
    if not isinstance(duration_str, str) or not duration_str.strip():
        raise DurationParseError("Duration string cannot be empty")

    cleaned = re.sub(r"\s+", "", duration_str)
    if cleaned.upper().startswith("P"):
        seconds = _parse_iso8601(cleaned.upper())
    else:
        seconds = _parse_human_readable(cleaned.lower())

    if seconds == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")
    return seconds


def _parse_iso8601(value: str) -> int:
    """Parse ``P[n]DT[n]H[n]M[n]S`` and its shorter forms."""
    match = ISO8601_PATTERN.match(value)
    if not match or value in ("P", "PT"):
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{value}'. "
            "Expected format like 'P1D', 'PT1H30M', 'PT15M', or 'PT30S'"
        )

    days, hours, minutes, seconds = match.groups()
    return (
        int(days or 0) * UNIT_SECONDS["d"]
        + int(hours or 0) * UNIT_SECONDS["h"]
        + int(minutes or 0) * UNIT_SECONDS["m"]
        + int(float(seconds or 0))
    )


def _parse_human_readable(value: str) -> int:
    """Parse unit groups such as ``30s``, ``15m`` or ``2d12h``."""
    if not HUMAN_PATTERN.match(value):
        raise DurationParseError(
            f"Invalid duration format: '{value}'. "
            "Use digits with units s, m, h or d, e.g. '15m', '1h' or '1h30m'"
        )
    return sum(int(num) * UNIT_SECONDS[unit] for num, unit in HUMAN_PART.findall(value))


def validate_duration_range(
    duration_seconds: int,
    min_seconds: int = 300,
    max_seconds: int = 86400,
    label: str = "Duration",
) -> None:
    """
    Validate that a duration is within acceptable range.

    Args:
        duration_seconds: Duration in seconds to validate
        min_seconds: Minimum allowed duration (default: 5 minutes)
        max_seconds: Maximum allowed duration (default: 24 hours)
        label: Name used in the error message

    Raises:
        DurationParseError: If duration is outside the valid range
    """
    if duration_seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {format_duration(duration_seconds)}. "
            f"Minimum is {format_duration(min_seconds)}."
        )
    if duration_seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {format_duration(duration_seconds)}. "
            f"Maximum is {format_duration(max_seconds)}."
        )


def format_duration(seconds: int) -> str:
    """
    Render seconds in the largest whole unit, e.g. "15 minutes" or "1 day".
    """
    for unit, name in (("d", "day"), ("h", "hour"), ("m", "minute")):
        if seconds >= UNIT_SECONDS[unit]:
            count = seconds // UNIT_SECONDS[unit]
            return f"{count} {name}{'s' if count != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"
