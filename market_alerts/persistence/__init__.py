"""Persistence layer for the key-value account directory.

This module provides the public API for database operations including:
- Database initialization and connection management
- KeyValueRepository for get/put/delete/list on JSON entries
- Custom exceptions for error handling

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes
    - KeyValueRepository: JSON values under hierarchical keys

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures
    - DataIntegrityError: Rejected writes

Example usage:
    >>> from market_alerts.persistence import init_database, get_session, KeyValueRepository
    >>>
    >>> init_database("sqlite:///./data/market_alerts.db")
    >>>
    >>> with get_session() as session:
    ...     repo = KeyValueRepository(session)
    ...     repo.put("acct/<userId>/favourites", ["SKU1"])
"""

# Database initialization and session management
from .database import close_database, get_engine, get_session, init_database

# Repository classes
from .repositories import KeyValueRepository

# Exceptions
from .exceptions import DatabaseConnectionError, DataIntegrityError, PersistenceError

# Public API exports
__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    # Repositories
    "KeyValueRepository",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "DataIntegrityError",
]
