"""Custom exceptions for SMTP delivery.

Every failure of a delivery attempt is an SMTPDeliveryError, so the pipeline
can record it against the recipient and move on to the next job.
"""

from typing import Optional


class SMTPDeliveryError(Exception):
    """Base exception for all SMTP delivery failures."""

    pass


class AuthError(SMTPDeliveryError):
    """Server rejected authentication or offered no usable mechanism."""

    pass


class ProtocolError(SMTPDeliveryError):
    """Server reply did not follow the protocol or had an unexpected code.

    Attributes:
        code: Reply code received, if a reply was parsed
        reply: Reply text received, if any
    """

    def __init__(self, message: str, code: Optional[int] = None, reply: Optional[str] = None) -> None:
        """Initialize protocol error.

        Args:
            message: Human-readable error message
            code: Reply code received
            reply: Reply text received
        """
        super().__init__(message)
        self.code = code
        self.reply = reply


class StepTimeoutError(SMTPDeliveryError, TimeoutError):
    """A protocol step or the whole delivery ran out of time."""

    pass


class TransportError(SMTPDeliveryError):
    """Socket or TLS failure, including the server closing the connection."""

    pass


class AddressError(SMTPDeliveryError):
    """Envelope address is invalid or could inject SMTP commands."""

    pass
