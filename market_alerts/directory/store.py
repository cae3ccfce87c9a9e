"""Account directory store contract and its SQL-backed implementation.

The directory is a key-value namespace holding JSON documents:

- ``auth/email/<email>``: ``{userId, verified?, pwHash?, createdAt}``
- ``acct/<userId>/details``: profile record including ``emailNotifications``
- ``acct/<userId>/favourites``: list of saved SKU ids
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from market_alerts.logging import get_logger
from market_alerts.persistence import KeyValueRepository, PersistenceError, get_session

logger = get_logger(__name__, component="directory")

EMAIL_INDEX_PREFIX = "auth/email/"
ACCOUNT_RESOURCES = ("details", "favourites", "sampled", "score")


def email_index_key(email: str) -> str:
    """Key of the email index entry for an address."""
    return f"{EMAIL_INDEX_PREFIX}{email}"


def account_key(user_id: str, resource: str) -> str:
    """Key of one of a user's account resources."""
    return f"acct/{user_id}/{resource}"


class DirectoryError(Exception):
    """A directory read, write, or listing failed."""

    pass


@dataclass(frozen=True)
class KeyListPage:
    """One page of a prefix listing.

    Attributes:
        keys: Keys on this page, in key order
        next_cursor: Cursor for the following page (None when complete)
        is_complete: True if this is the last page
    """

    keys: List[str] = field(default_factory=list)
    next_cursor: Optional[str] = None
    is_complete: bool = True


class DirectoryStore(ABC):
    """Key-value contract the directory scanner and admin tools rely on."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the decoded JSON value for a key, or None if absent."""

    @abstractmethod
    def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store a JSON value, optionally expiring after ttl_seconds."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key; removing a missing key is not an error."""

    @abstractmethod
    def list(self, prefix: str, cursor: Optional[str] = None, limit: int = 100) -> KeyListPage:
        """List keys starting with prefix, resuming after cursor."""


class SqlDirectoryStore(DirectoryStore):
    """DirectoryStore backed by the kv_entries table.

    Each call runs in its own session so a failed read never poisons the
    next one. init_database() must have been called first.
    """

    def get(self, key: str) -> Optional[Any]:
        try:
            with get_session() as session:
                return KeyValueRepository(session).get(key)
        except (PersistenceError, SQLAlchemyError) as e:
            raise DirectoryError(f"Failed to read {key}: {e}") from e

    def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        try:
            with get_session() as session:
                KeyValueRepository(session).put(key, value, ttl_seconds=ttl_seconds)
        except (PersistenceError, SQLAlchemyError) as e:
            raise DirectoryError(f"Failed to write {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            with get_session() as session:
                KeyValueRepository(session).delete(key)
        except (PersistenceError, SQLAlchemyError) as e:
            raise DirectoryError(f"Failed to delete {key}: {e}") from e

    def list(self, prefix: str, cursor: Optional[str] = None, limit: int = 100) -> KeyListPage:
        try:
            with get_session() as session:
                keys, next_cursor = KeyValueRepository(session).list_keys(
                    prefix=prefix, cursor=cursor, limit=limit
                )
        except (PersistenceError, SQLAlchemyError) as e:
            raise DirectoryError(f"Failed to list keys under {prefix}: {e}") from e

        logger.debug(
            "Listed directory page",
            extra={"event": "directory.page.listed", "prefix": prefix, "keys": len(keys)},
        )
        return KeyListPage(keys=keys, next_cursor=next_cursor, is_complete=next_cursor is None)
