"""Custom exceptions for event pack intake."""

from typing import List, Optional


class PackError(Exception):
    """Base exception for all event pack errors.

    Any PackError aborts the current pipeline run: nothing can be matched
    against a pack that was not accepted.
    """

    pass


class ValidationError(PackError):
    """Pack or rule document is malformed.

    Raised for document-level problems only. Individual bad SKU entries and
    event rows are dropped while parsing and never raise.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        """Initialize validation error.

        Args:
            message: Human-readable error message
            errors: Optional list of specific problems found
        """
        super().__init__(message)
        self.errors = errors or []


class AuthError(PackError):
    """Pack signature is missing, invalid, or outside the freshness window."""

    pass


class PackSourceError(PackError):
    """Pack could not be read from its configured source.

    Covers unreadable files, HTTP errors, timeouts, and oversized bodies.
    """

    def __init__(self, message: str, source: str) -> None:
        """Initialize source error.

        Args:
            message: Human-readable error message
            source: File path or URL that failed
        """
        super().__init__(message)
        self.source = source
