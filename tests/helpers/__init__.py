"""Test helper utilities for Market Alerts tests."""

from .builders import (
    delivery_job,
    make_app_config,
    make_env_config,
    market_event,
    matched_event,
    pack_document,
    price_drop,
    rule,
    seed_account,
    sku_entry,
    user_id,
)
from .fake_smtp import FakeSMTPNetwork, FakeSMTPServer, FakeTLSContext
from .memory_store import InMemoryDirectoryStore

__all__ = [
    "FakeSMTPNetwork",
    "FakeSMTPServer",
    "FakeTLSContext",
    "InMemoryDirectoryStore",
    "delivery_job",
    "make_app_config",
    "make_env_config",
    "market_event",
    "matched_event",
    "pack_document",
    "price_drop",
    "rule",
    "seed_account",
    "sku_entry",
    "user_id",
]
