"""Event pack intake: loading, signature checks, and validation."""

from .exceptions import AuthError, PackError, PackSourceError, ValidationError
from .loader import PackLoader, is_url_source
from .signature import compute_signature, verify_signature
from .validator import MAX_EVENTS, load_event_pack, parse_event_pack

__all__ = [
    "AuthError",
    "MAX_EVENTS",
    "PackError",
    "PackLoader",
    "PackSourceError",
    "ValidationError",
    "compute_signature",
    "is_url_source",
    "load_event_pack",
    "parse_event_pack",
    "verify_signature",
]
