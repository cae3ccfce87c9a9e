"""Data models and exceptions for the digest notifier.

This module defines result types and custom exceptions used throughout
the notification pipeline.
"""

from dataclasses import dataclass
from typing import Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when template rendering fails due to configuration or missing variables."""

    pass


@dataclass(frozen=True)
class Digest:
    """A rendered digest, ready to be wrapped in an email message.

    Attributes:
        subject: Single-line subject
        text_body: Plain text part
        html_body: HTML alternative part
    """

    subject: str
    text_body: str
    html_body: str


@dataclass
class NotificationResult:
    """Result of attempting to deliver one digest.

    Attributes:
        user_id: Account the digest was built for
        recipient: Recipient email address
        event_count: Number of matched events in the digest
        status: Outcome status (sent, failed)
        error: Optional error message if delivery failed
        error_type: Exception class name of the failure, if any
    """

    user_id: str
    recipient: str
    event_count: int
    status: str  # "sent", "failed"
    error: Optional[str] = None
    error_type: Optional[str] = None

    def is_success(self) -> bool:
        """Check if the digest was accepted by the SMTP server.

        Returns:
            True if status is "sent", False otherwise
        """
        return self.status == "sent"
