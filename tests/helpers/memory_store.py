"""In-memory DirectoryStore for tests that do not need a database."""

from typing import Any, Dict, Iterable, Optional, Set

from market_alerts.directory import DirectoryError, DirectoryStore, KeyListPage


class InMemoryDirectoryStore(DirectoryStore):
    """Dict-backed directory with keyset paging and failure injection.

    Attributes:
        entries: Stored values by key
        failing_keys: Keys whose get() raises DirectoryError
        fail_list_after: Number of successful list() calls before listing fails
        stuck_cursor: When set, every page returns this cursor and never completes
        list_calls: Number of list() calls made
        get_calls: Keys read, in order
    """

    def __init__(self, entries: Optional[Dict[str, Any]] = None) -> None:
        self.entries: Dict[str, Any] = dict(entries or {})
        self.failing_keys: Set[str] = set()
        self.fail_list_after: Optional[int] = None
        self.stuck_cursor: Optional[str] = None
        self.list_calls = 0
        self.get_calls = []

    def fail_on(self, keys: Iterable[str]) -> None:
        self.failing_keys.update(keys)

    def get(self, key: str) -> Optional[Any]:
        self.get_calls.append(key)
        if key in self.failing_keys:
            raise DirectoryError(f"Failed to read {key}: injected failure")
        return self.entries.get(key)

    def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        self.entries[key] = value

    def delete(self, key: str) -> None:
        self.entries.pop(key, None)

    def list(self, prefix: str, cursor: Optional[str] = None, limit: int = 100) -> KeyListPage:
        if self.fail_list_after is not None and self.list_calls >= self.fail_list_after:
            raise DirectoryError(f"Failed to list keys under {prefix}: injected failure")
        self.list_calls += 1

        keys = sorted(k for k in self.entries if k.startswith(prefix) and (cursor is None or k > cursor))
        if self.stuck_cursor is not None:
            return KeyListPage(keys=keys[:limit], next_cursor=self.stuck_cursor, is_complete=False)
        if len(keys) > limit:
            page = keys[:limit]
            return KeyListPage(keys=page, next_cursor=page[-1], is_complete=False)
        return KeyListPage(keys=keys, next_cursor=None, is_complete=True)
