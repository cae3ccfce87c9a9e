"""Directory scanning: find every verified account with enabled rules.

The scanner pages through the email index and resolves each entry to an
account. Problems with a single account skip that account. A failed page
listing stops the scan, and the accounts found so far are still returned.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Set, Tuple

from email_validator import EmailNotValidError, validate_email

from market_alerts.domain.models import NotificationRule, is_valid_sku
from market_alerts.events.exceptions import ValidationError
from market_alerts.logging import get_logger
from market_alerts.matching.rules import parse_notification_settings

from .store import EMAIL_INDEX_PREFIX, DirectoryError, DirectoryStore, account_key

logger = get_logger(__name__, component="directory")

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_valid_user_id(value: Any) -> bool:
    """Check that a user id is a version 1-5 UUID string."""
    return isinstance(value, str) and bool(UUID_PATTERN.match(value))


class FavouritesLoader:
    """Reads a user's favourites on first call and caches the result."""

    def __init__(self, store: DirectoryStore, user_id: str) -> None:
        self._store = store
        self._user_id = user_id
        self._favourites: Optional[List[str]] = None
        self.calls = 0

    def __call__(self) -> List[str]:
        if self._favourites is None:
            self.calls += 1
            raw = self._store.get(account_key(self._user_id, "favourites"))
            if isinstance(raw, list):
                self._favourites = [sku for sku in raw if is_valid_sku(sku)]
            else:
                self._favourites = []
        return self._favourites

    @property
    def loaded(self) -> bool:
        """Whether the favourites have been read."""
        return self._favourites is not None


@dataclass
class DirectoryAccount:
    """A verified user with at least one enabled rule.

    Attributes:
        user_id: Account UUID
        email: Normalized recipient address
        rules: Enabled notification rules
        favourites: Lazy loader for the user's saved SKU ids
    """

    user_id: str
    email: str
    rules: Tuple[NotificationRule, ...]
    favourites: Callable[[], List[str]]


@dataclass
class DirectoryScanResult:
    """Outcome of one directory scan.

    Attributes:
        accounts: Accounts to match, in scan order
        scanned: Email index entries visited
        skipped: Entries skipped for any reason
        error: Listing error that stopped the scan early, if any
    """

    accounts: List[DirectoryAccount] = field(default_factory=list)
    scanned: int = 0
    skipped: int = 0
    error: Optional[str] = None


class DirectoryScanner:
    """Pages through the email index and resolves accounts.

    Attributes:
        store: Directory store to read
        prefix: Email index key prefix
        page_size: Keys requested per listing call
    """

    def __init__(
        self,
        store: DirectoryStore,
        prefix: str = EMAIL_INDEX_PREFIX,
        page_size: int = 100,
    ) -> None:
        self.store = store
        self.prefix = prefix
        self.page_size = page_size

    def scan(self) -> DirectoryScanResult:
        """Visit every email index entry once and collect eligible accounts.

        Each userId is processed at most once per scan, however many email
        aliases point at it.

        Returns:
            DirectoryScanResult with accounts and counters
        """
        result = DirectoryScanResult()
        seen_users: Set[str] = set()
        cursor: Optional[str] = None

        while True:
            try:
                page = self.store.list(self.prefix, cursor=cursor, limit=self.page_size)
            except DirectoryError as e:
                result.error = str(e)
                logger.error(
                    f"Directory listing failed, stopping scan: {e}",
                    extra={
                        "event": "directory.scan.aborted",
                        "scanned": result.scanned,
                        "accounts": len(result.accounts),
                    },
                )
                break

            for key in page.keys:
                result.scanned += 1
                account = self._resolve(key, seen_users)
                if account is None:
                    result.skipped += 1
                else:
                    result.accounts.append(account)

            if page.is_complete:
                break
            if not page.next_cursor or page.next_cursor == cursor:
                result.error = "Directory listing did not advance its cursor"
                logger.error(result.error, extra={"event": "directory.scan.aborted"})
                break
            cursor = page.next_cursor

        logger.info(
            f"Directory scan found {len(result.accounts)} accounts",
            extra={
                "event": "directory.scan.completed",
                "scanned": result.scanned,
                "skipped": result.skipped,
                "accounts": len(result.accounts),
            },
        )
        return result

    def _resolve(self, key: str, seen_users: Set[str]) -> Optional[DirectoryAccount]:
        """Turn one email index key into an account, or None to skip it."""
        if not key.startswith(self.prefix):
            return self._skip(key, "foreign_key")

        try:
            email = validate_email(key[len(self.prefix):], check_deliverability=False).normalized
        except EmailNotValidError:
            return self._skip(key, "invalid_email")

        try:
            index = self.store.get(key)
        except DirectoryError as e:
            return self._skip(key, "index_read_failed", error=str(e))

        if not isinstance(index, dict):
            return self._skip(key, "missing_index")
        if index.get("verified") is False:
            return self._skip(key, "unverified")

        user_id = index.get("userId")
        if not is_valid_user_id(user_id):
            return self._skip(key, "invalid_user_id")
        if user_id in seen_users:
            return self._skip(key, "duplicate_user")

        try:
            details = self.store.get(account_key(user_id, "details"))
        except DirectoryError as e:
            return self._skip(key, "details_read_failed", user_id=user_id, error=str(e))
        # A failed details read leaves the user open to its other aliases
        seen_users.add(user_id)

        try:
            settings = parse_notification_settings(details)
        except ValidationError as e:
            logger.warning(
                f"Skipping user with malformed notification rules: {e}",
                extra={"event": "directory.rules.invalid", "user_id": user_id, "errors": e.errors[:5]},
            )
            return None

        rules = settings.enabled_rules
        if not rules:
            return self._skip(key, "no_enabled_rules", user_id=user_id)

        return DirectoryAccount(
            user_id=user_id,
            email=email,
            rules=rules,
            favourites=FavouritesLoader(self.store, user_id),
        )

    @staticmethod
    def _skip(key: str, reason: str, **extra) -> None:
        level_extra = {"event": "directory.account.skipped", "reason": reason, **extra}
        if "error" in extra:
            logger.warning(f"Skipping directory entry: {reason}", extra=level_extra)
        else:
            logger.debug(f"Skipping directory entry: {reason}", extra=level_extra)
        return None
