"""Database schema definition and ORM models.

The account directory is a flat key-value table. Values are JSON documents
stored as text, with an optional expiry after which the entry is invisible.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Index, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

# Create base class for ORM models
Base = declarative_base()

MAX_KEY_LENGTH = 512


class KeyValueModel(Base):
    """ORM model for kv_entries table.

    Keys are hierarchical paths such as ``auth/email/<email>`` and
    ``acct/<userId>/details``.
    """

    __tablename__ = "kv_entries"

    key = Column(String(MAX_KEY_LENGTH), primary_key=True, nullable=False)
    value = Column(Text, nullable=False)

    # Timestamps (stored as ISO 8601 strings)
    updated_at = Column(String(50), nullable=False)
    expires_at = Column(String(50), nullable=True)

    __table_args__ = (Index("idx_kv_entries_expires_at", "expires_at"),)

    def is_expired(self, now: datetime) -> bool:
        """Check whether this entry's expiry has passed.

        Args:
            now: Current UTC time

        Returns:
            True if the entry has an expiry at or before now
        """
        expires = parse_datetime(self.expires_at)
        return expires is not None and expires <= now


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO 8601 string for database storage.

    Args:
        dt: Datetime object (naive values are treated as UTC)

    Returns:
        ISO 8601 formatted string or None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string written by format_datetime.

    Returns:
        Timezone-aware datetime in UTC or None
    """
    if not dt_str:
        return None

    dt_str = dt_str.rstrip("Z")
    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent).

    Args:
        engine: SQLAlchemy engine instance
    """
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)

        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")

    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
