"""Data access layer (repositories) for persistence operations.

This module provides the key-value repository backing the account directory.
Repositories encapsulate database operations and return plain JSON values
rather than ORM models.
"""

import json
import logging
from datetime import timedelta
from typing import Any, List, Optional, Tuple

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from market_alerts.utils.timestamps import utc_now

from .exceptions import DataIntegrityError, PersistenceError
from .schema import MAX_KEY_LENGTH, KeyValueModel, format_datetime

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 1000


class KeyValueRepository:
    """Repository for JSON values stored under hierarchical string keys."""

    def __init__(self, session: Session):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def get(self, key: str) -> Optional[Any]:
        """Retrieve and decode the value stored under a key.

        Args:
            key: Entry key

        Returns:
            Decoded JSON value, or None if missing or expired

        Raises:
            PersistenceError: If database error occurs or the value is not JSON
        """
        try:
            model = self.session.get(KeyValueModel, key)
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving key {key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve key: {e}") from e

        if model is None or model.is_expired(utc_now()):
            return None

        try:
            return json.loads(model.value)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Stored value for {key} is not valid JSON: {e}") from e

    def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Insert or replace the value stored under a key.

        Args:
            key: Entry key
            value: JSON-serializable value
            ttl_seconds: Optional lifetime after which the entry is invisible

        Raises:
            DataIntegrityError: If the key is invalid or the value is not serializable
            PersistenceError: If database error occurs
        """
        if not key or len(key) > MAX_KEY_LENGTH:
            raise DataIntegrityError(f"Key must be 1-{MAX_KEY_LENGTH} characters")
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise DataIntegrityError(f"ttl_seconds must be positive, got: {ttl_seconds}")

        try:
            encoded = json.dumps(value, separators=(",", ":"), sort_keys=True)
        except (TypeError, ValueError) as e:
            raise DataIntegrityError(f"Value for {key} is not JSON-serializable: {e}") from e

        now = utc_now()
        expires_at = format_datetime(now + timedelta(seconds=ttl_seconds)) if ttl_seconds else None

        try:
            existing = self.session.get(KeyValueModel, key)
            if existing:
                existing.value = encoded
                existing.updated_at = format_datetime(now)
                existing.expires_at = expires_at
            else:
                self.session.add(
                    KeyValueModel(
                        key=key,
                        value=encoded,
                        updated_at=format_datetime(now),
                        expires_at=expires_at,
                    )
                )
            self.session.flush()

            logger.debug(f"Stored key {key}", extra={"key": key, "ttl_seconds": ttl_seconds})

        except IntegrityError as e:
            logger.error(f"Integrity error storing key {key}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to store key due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error storing key {key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to store key: {e}") from e

    def delete(self, key: str) -> bool:
        """Delete the entry stored under a key.

        Args:
            key: Entry key

        Returns:
            True if an entry was deleted

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            result = self.session.execute(delete(KeyValueModel).where(KeyValueModel.key == key))
            self.session.flush()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting key {key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete key: {e}") from e

    def list_keys(
        self, prefix: str = "", cursor: Optional[str] = None, limit: int = 100
    ) -> Tuple[List[str], Optional[str]]:
        """List live keys that start with a prefix, in key order.

        Paging is keyset-based: the cursor is the last key of the previous
        page, so keys added or removed between pages never shift later pages.

        Args:
            prefix: Key prefix to match (matched literally, no wildcards)
            cursor: Last key returned by the previous page
            limit: Page size (1-1000)

        Returns:
            Tuple of (keys, next_cursor); next_cursor is None on the last page

        Raises:
            PersistenceError: If limit is out of range or a database error occurs
        """
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise PersistenceError(f"limit must be between 1 and {MAX_PAGE_SIZE}, got: {limit}")

        now = format_datetime(utc_now())
        stmt = select(KeyValueModel.key).where(
            KeyValueModel.key.startswith(prefix, autoescape=True),
            or_(KeyValueModel.expires_at.is_(None), KeyValueModel.expires_at > now),
        )
        if cursor:
            stmt = stmt.where(KeyValueModel.key > cursor)
        stmt = stmt.order_by(KeyValueModel.key).limit(limit + 1)

        try:
            keys = list(self.session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing keys with prefix {prefix}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list keys: {e}") from e

        if len(keys) > limit:
            keys = keys[:limit]
            return keys, keys[-1]
        return keys, None

    def purge_expired(self) -> int:
        """Delete every expired entry.

        Returns:
            Number of entries deleted

        Raises:
            PersistenceError: If database error occurs
        """
        now = format_datetime(utc_now())
        try:
            result = self.session.execute(
                delete(KeyValueModel).where(
                    KeyValueModel.expires_at.is_not(None), KeyValueModel.expires_at <= now
                )
            )
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error purging expired keys: {e}", exc_info=True)
            raise PersistenceError(f"Failed to purge expired keys: {e}") from e

        if result.rowcount:
            logger.info(f"Purged {result.rowcount} expired entries")
        return result.rowcount
