"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    pack = config_dict.get("pack", {})
    if isinstance(pack, dict):
        source = pack.get("source", "")
        if isinstance(source, str) and source.strip().lower().startswith("http://"):
            warning_messages.append(
                f"Pack source {source} uses plain HTTP; the pack and its signature travel unencrypted"
            )

    digest = config_dict.get("digest", {})
    if isinstance(digest, dict):
        site_url = digest.get("site_url", "")
        if isinstance(site_url, str) and site_url.strip().lower().startswith("http://"):
            warning_messages.append(
                f"digest.site_url ({site_url}) is not HTTPS; item links in digests will be insecure"
            )
        if not digest.get("repo_url"):
            warning_messages.append(
                "digest.repo_url is not set; digest footers will link to the site instead of a commit"
            )

    # Small pages mean many list calls against the directory
    directory = config_dict.get("directory", {})
    if isinstance(directory, dict):
        page_size = directory.get("page_size", 100)
        if isinstance(page_size, int) and 0 < page_size < 10:
            warning_messages.append(
                f"Small directory.page_size ({page_size}) will need many list calls per scan"
            )

    smtp = config_dict.get("smtp", {})
    delivery = config_dict.get("delivery", {})
    if isinstance(smtp, dict) and isinstance(delivery, dict):
        command_timeout = smtp.get("command_timeout", 30)
        budget = delivery.get("time_budget_seconds", 120)
        if isinstance(command_timeout, int) and isinstance(budget, int) and command_timeout > budget:
            warning_messages.append(
                f"smtp.command_timeout ({command_timeout}s) exceeds delivery.time_budget_seconds "
                f"({budget}s); steps will be cut short by the budget"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
