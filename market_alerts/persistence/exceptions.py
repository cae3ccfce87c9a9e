"""Persistence layer exceptions.

This module defines custom exceptions for database and persistence operations.
All persistence exceptions inherit from PersistenceError for easy catching.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors.

    Callers can catch every database-related failure with a single except clause.
    """

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database file not accessible
    - Database driver not available
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a write is rejected before or by the database.

    Examples:
    - Empty or oversized key
    - Value that cannot be encoded as JSON
    - Non-positive TTL
    - Constraint violation
    """

    pass
