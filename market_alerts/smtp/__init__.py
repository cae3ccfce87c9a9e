"""Hand-driven SMTP client for digest delivery.

This module provides:
- SMTPClient: One-message-per-session delivery with mandatory TLS
- SMTPConnection / SMTPState: The protocol state machine
- EXPECTED_REPLY_CODES: Reply code accepted at each step
- Protocol helpers for reply parsing and DATA encoding
"""

from .client import (
    EXPECTED_REPLY_CODES,
    SMTPClient,
    SMTPConnection,
    SMTPState,
    build_sender_address,
    serialize_message,
)
from .exceptions import (
    AddressError,
    AuthError,
    ProtocolError,
    SMTPDeliveryError,
    StepTimeoutError,
    TransportError,
)
from .protocol import (
    MESSAGE_POLICY,
    Capabilities,
    SMTPReply,
    dot_stuff,
    parse_capabilities,
    parse_reply_line,
    prepare_data,
    validate_recipient,
)

__all__ = [
    "AddressError",
    "AuthError",
    "Capabilities",
    "EXPECTED_REPLY_CODES",
    "MESSAGE_POLICY",
    "ProtocolError",
    "SMTPClient",
    "SMTPConnection",
    "SMTPDeliveryError",
    "SMTPReply",
    "SMTPState",
    "StepTimeoutError",
    "TransportError",
    "build_sender_address",
    "dot_stuff",
    "parse_capabilities",
    "parse_reply_line",
    "prepare_data",
    "serialize_message",
    "validate_recipient",
]
