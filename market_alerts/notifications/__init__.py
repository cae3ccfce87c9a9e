"""Digest notification package.

This module provides:
- DigestNotifier: Renders and delivers one digest per recipient
- TemplateRenderer: Jinja2 rendering of subject, text and HTML bodies
- build_digest_context: Template context from a DeliveryJob
- Result types and exceptions
"""

from .models import Digest, NotificationError, NotificationResult, NotificationTemplateError
from .payloads import build_digest_context
from .service import DigestNotifier
from .templates import TemplateRenderer

__all__ = [
    "Digest",
    "DigestNotifier",
    "NotificationError",
    "NotificationResult",
    "NotificationTemplateError",
    "TemplateRenderer",
    "build_digest_context",
]
