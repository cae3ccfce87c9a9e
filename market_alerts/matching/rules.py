"""Parsing of a user's stored notification rule configuration."""

from typing import Any, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from market_alerts.domain.models import NotificationSettings
from market_alerts.events.exceptions import ValidationError

RULES_FIELD = "emailNotifications"


def parse_notification_settings(details: Optional[Mapping[str, Any]]) -> NotificationSettings:
    """Extract and validate ``emailNotifications`` from a profile record.

    A profile without the field (or without a profile at all) has no rules.

    Args:
        details: Stored ``acct/<userId>/details`` document, or None

    Returns:
        Validated NotificationSettings

    Raises:
        ValidationError: If the rule document is malformed
    """
    if details is None:
        return NotificationSettings()
    if not isinstance(details, Mapping):
        raise ValidationError("Account details must be an object")

    raw = details.get(RULES_FIELD)
    if raw is None:
        return NotificationSettings()

    try:
        return NotificationSettings.model_validate(raw)
    except PydanticValidationError as e:
        errors = []
        for error in e.errors():
            field_path = ".".join(str(loc) for loc in error["loc"])
            errors.append(f"{field_path}: {error['msg']}" if field_path else error["msg"])
        raise ValidationError("Invalid notification rules", errors=errors) from e
