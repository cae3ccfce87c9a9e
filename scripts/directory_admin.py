#!/usr/bin/env python3
"""Directory maintenance tool for the account key-value store.

Operators use it to inspect and seed the directory that the delivery
pipeline scans.

Usage:
    # List every email index entry with its user id
    python scripts/directory_admin.py list-users

    # Print all stored documents for one account
    python scripts/directory_admin.py dump-user 3f2a...-...

    # Remove an account and every email alias pointing at it
    python scripts/directory_admin.py delete-user 3f2a...-...

    # Seed the store from a JSON file ({"key": value, ...} or
    # [{"key": ..., "value": ..., "ttlSeconds": ...}, ...])
    python scripts/directory_admin.py import tests/fixtures/directory.json

    # Delete entries whose TTL has passed
    python scripts/directory_admin.py purge-expired

    # Use a specific database
    python scripts/directory_admin.py --database sqlite:////tmp/dir.db list-users
"""

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from market_alerts.config.environment import DEFAULT_DATABASE_URL
from market_alerts.directory import (
    ACCOUNT_RESOURCES,
    EMAIL_INDEX_PREFIX,
    DirectoryError,
    DirectoryStore,
    SqlDirectoryStore,
    account_key,
)
from market_alerts.logging.config import configure_logging
from market_alerts.persistence import KeyValueRepository, PersistenceError
from market_alerts.persistence.database import close_database, get_session, init_database


def iter_keys(store: DirectoryStore, prefix: str, page_size: int = 100) -> Iterator[str]:
    """Yield every key under a prefix, following list cursors."""
    cursor: Optional[str] = None
    while True:
        page = store.list(prefix, cursor=cursor, limit=page_size)
        yield from page.keys
        if page.is_complete or not page.next_cursor:
            return
        cursor = page.next_cursor


def list_users(store: DirectoryStore) -> int:
    rows = []
    for key in iter_keys(store, EMAIL_INDEX_PREFIX):
        entry = store.get(key)
        if not isinstance(entry, dict):
            rows.append((key[len(EMAIL_INDEX_PREFIX):], "<malformed>", "-"))
            continue
        verified = entry.get("verified")
        rows.append(
            (
                key[len(EMAIL_INDEX_PREFIX):],
                str(entry.get("userId", "<missing>")),
                "no" if verified is False else "yes",
            )
        )

    if not rows:
        print("No accounts found")
        return 0

    email_width = max(len("Email"), *(len(row[0]) for row in rows))
    print(f"{'Email':<{email_width}}  {'User ID':<36}  Verified")
    for email, user_id, verified in rows:
        print(f"{email:<{email_width}}  {user_id:<36}  {verified}")
    print(f"\n{len(rows)} entries")
    return 0


def dump_user(store: DirectoryStore, user_id: str) -> int:
    documents = {
        resource: store.get(account_key(user_id, resource)) for resource in ACCOUNT_RESOURCES
    }
    documents["emails"] = emails_for_user(store, user_id)

    if all(documents[resource] is None for resource in ACCOUNT_RESOURCES) and not documents["emails"]:
        print(f"No documents found for user {user_id}", file=sys.stderr)
        return 1

    print(json.dumps(documents, indent=2, sort_keys=True))
    return 0


def emails_for_user(store: DirectoryStore, user_id: str) -> List[str]:
    emails = []
    for key in iter_keys(store, EMAIL_INDEX_PREFIX):
        entry = store.get(key)
        if isinstance(entry, dict) and entry.get("userId") == user_id:
            emails.append(key[len(EMAIL_INDEX_PREFIX):])
    return emails


def delete_user(store: DirectoryStore, user_id: str) -> int:
    emails = emails_for_user(store, user_id)
    for email in emails:
        store.delete(EMAIL_INDEX_PREFIX + email)
    for resource in ACCOUNT_RESOURCES:
        store.delete(account_key(user_id, resource))

    print(f"Deleted user {user_id} ({len(emails)} email index entries)")
    return 0


def load_import_file(path: Path) -> List[Tuple[str, Any, Optional[int]]]:
    """Read (key, value, ttl) triples from a JSON mapping or list of entries."""
    with open(path, "r", encoding="utf-8") as f:
        document = json.load(f)

    if isinstance(document, dict):
        return [(key, value, None) for key, value in document.items()]

    if isinstance(document, list):
        entries = []
        for index, item in enumerate(document):
            if not isinstance(item, dict) or not isinstance(item.get("key"), str):
                raise ValueError(f"Entry {index} must be an object with a string 'key'")
            entries.append((item["key"], item.get("value"), item.get("ttlSeconds")))
        return entries

    raise ValueError("Import file must contain a JSON object or a list of entries")


def import_entries(store: DirectoryStore, path: Path) -> int:
    try:
        entries = load_import_file(path)
    except (OSError, ValueError) as e:
        print(f"Cannot import {path}: {e}", file=sys.stderr)
        return 1

    for key, value, ttl_seconds in entries:
        store.put(key, value, ttl_seconds=ttl_seconds)

    print(f"Imported {len(entries)} entries from {path}")
    return 0


def purge_expired() -> int:
    try:
        with get_session() as session:
            removed = KeyValueRepository(session).purge_expired()
    except PersistenceError as e:
        print(f"Purge failed: {e}", file=sys.stderr)
        return 1

    print(f"Purged {removed} expired entries")
    return 0


def main(argv=None) -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Inspect and seed the account directory")
    parser.add_argument(
        "--database",
        default=None,
        help=f"Database URL (default: DATABASE_URL or {DEFAULT_DATABASE_URL})",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("list-users", help="List email index entries")
    dump = subparsers.add_parser("dump-user", help="Print an account's documents")
    dump.add_argument("user_id")
    delete = subparsers.add_parser("delete-user", help="Delete an account and its email aliases")
    delete.add_argument("user_id")
    importer = subparsers.add_parser("import", help="Seed the store from a JSON file")
    importer.add_argument("path", type=Path)
    subparsers.add_parser("purge-expired", help="Delete entries whose TTL has passed")

    args = parser.parse_args(argv)

    configure_logging(level="WARNING", format_type="key-value")
    init_database(args.database or os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL)
    store = SqlDirectoryStore()

    try:
        if args.command == "list-users":
            return list_users(store)
        if args.command == "dump-user":
            return dump_user(store, args.user_id)
        if args.command == "delete-user":
            return delete_user(store, args.user_id)
        if args.command == "purge-expired":
            return purge_expired()
        return import_entries(store, args.path)
    except DirectoryError as e:
        print(f"Directory error: {e}", file=sys.stderr)
        return 1
    finally:
        close_database()


if __name__ == "__main__":
    sys.exit(main())
