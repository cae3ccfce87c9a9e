"""Account directory: key-value store contract and account scanning."""

from .scanner import (
    DirectoryAccount,
    DirectoryScanner,
    DirectoryScanResult,
    FavouritesLoader,
    is_valid_user_id,
)
from .store import (
    ACCOUNT_RESOURCES,
    EMAIL_INDEX_PREFIX,
    DirectoryError,
    DirectoryStore,
    KeyListPage,
    SqlDirectoryStore,
    account_key,
    email_index_key,
)

__all__ = [
    "ACCOUNT_RESOURCES",
    "DirectoryAccount",
    "DirectoryError",
    "DirectoryScanResult",
    "DirectoryScanner",
    "DirectoryStore",
    "EMAIL_INDEX_PREFIX",
    "FavouritesLoader",
    "KeyListPage",
    "SqlDirectoryStore",
    "account_key",
    "email_index_key",
    "is_valid_user_id",
]
