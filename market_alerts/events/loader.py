"""Event pack source loading.

A pack source is either a local file path or an ``http(s)`` URL. URL sources
are fetched with requests and, when a signing secret is configured, must carry
a valid HMAC signature.
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import requests

from market_alerts.domain.models import EventPack
from market_alerts.logging import get_logger

from .exceptions import PackSourceError
from .signature import SIGNATURE_HEADER, TIMESTAMP_HEADER, verify_signature
from .validator import load_event_pack

logger = get_logger(__name__, component="events")

DEFAULT_MAX_BYTES = 20 * 1024 * 1024


def is_url_source(source: str) -> bool:
    """Check whether a pack source is an HTTP(S) URL rather than a file path."""
    return urlparse(source).scheme in ("http", "https")


class PackLoader:
    """Load and validate event packs from a file or URL.

    Attributes:
        source: File path or http(s) URL of the pack
        timeout: HTTP request timeout in seconds
        user_agent: User-Agent header for HTTP requests
        max_bytes: Largest accepted body size
        signing_secret: Shared HMAC secret for URL sources (None disables checks)
        signature_tolerance: Allowed signature clock skew in seconds
    """

    def __init__(
        self,
        source: str,
        timeout: int = 30,
        user_agent: str = "MarketAlerts/1.0",
        max_bytes: int = DEFAULT_MAX_BYTES,
        signing_secret: Optional[str] = None,
        signature_tolerance: int = 300,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize the loader.

        Args:
            source: File path or http(s) URL of the pack
            timeout: HTTP request timeout in seconds
            user_agent: User-Agent header for HTTP requests
            max_bytes: Largest accepted body size in bytes
            signing_secret: Shared HMAC secret for URL sources
            signature_tolerance: Allowed signature clock skew in seconds
            session: Optional requests session (injected by tests)
        """
        self.source = source
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_bytes = max_bytes
        self.signing_secret = signing_secret or None
        self.signature_tolerance = signature_tolerance

        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": self.user_agent})

    def load(self) -> EventPack:
        """Read the configured source and validate it as an event pack.

        Returns:
            Validated EventPack

        Raises:
            PackSourceError: If the source cannot be read
            AuthError: If the signature check fails
            ValidationError: If the body is not a valid pack
        """
        if is_url_source(self.source):
            body = self._fetch_url()
        else:
            body = self._read_file()
        return load_event_pack(body)

    def _read_file(self) -> bytes:
        """Read the pack body from a local file."""
        path = Path(self.source)
        try:
            size = path.stat().st_size
            if size > self.max_bytes:
                raise PackSourceError(
                    f"Pack file is {size} bytes; the limit is {self.max_bytes}",
                    source=self.source,
                )
            body = path.read_bytes()
        except OSError as e:
            logger.error(
                f"Failed to read pack file {self.source}: {e}",
                extra={"event": "pack.load.error", "source": self.source, "error_type": type(e).__name__},
            )
            raise PackSourceError(f"Cannot read pack file {self.source}: {e}", source=self.source) from e

        logger.debug(
            "Read pack file",
            extra={"event": "pack.load.succeeded", "source": self.source, "bytes": len(body)},
        )
        return body

    def _fetch_url(self) -> bytes:
        """Fetch the pack body over HTTP and check its signature."""
        url = self.source
        try:
            logger.debug(
                f"HTTP GET request to {url}",
                extra={"event": "pack.fetch.request", "url": url, "timeout": self.timeout},
            )
            response = self._session.get(url, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Request to {url} timed out after {self.timeout} seconds",
                extra={"event": "pack.fetch.error", "error_type": "Timeout", "url": url},
            )
            raise PackSourceError(
                f"Request to {url} timed out after {self.timeout} seconds", source=url
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(
                f"Request to {url} failed: {e}",
                extra={"event": "pack.fetch.error", "error_type": type(e).__name__, "url": url},
            )
            raise PackSourceError(f"Request to {url} failed: {e}", source=url) from e

        if response.status_code >= 400:
            log_level = logging.WARNING if response.status_code >= 500 else logging.ERROR
            logger.log(
                log_level,
                f"HTTP {response.status_code} error from {url}",
                extra={"event": "pack.fetch.error", "status_code": response.status_code, "url": url},
            )
            raise PackSourceError(f"HTTP {response.status_code}: {response.reason}", source=url)

        body = response.content
        if len(body) > self.max_bytes:
            raise PackSourceError(
                f"Pack body is {len(body)} bytes; the limit is {self.max_bytes}", source=url
            )

        if self.signing_secret:
            verify_signature(
                body,
                response.headers.get(TIMESTAMP_HEADER),
                response.headers.get(SIGNATURE_HEADER),
                self.signing_secret,
                tolerance_seconds=self.signature_tolerance,
            )

        logger.debug(
            "HTTP request succeeded",
            extra={"event": "pack.fetch.succeeded", "status_code": response.status_code, "url": url},
        )
        return body
