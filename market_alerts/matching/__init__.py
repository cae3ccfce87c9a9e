"""Rule matching engine for turning pack events into per-user digest entries.

This module provides:
- parse_notification_settings: Validate a user's stored rule document
- rule_matches / RuleMatcher: Evaluate events against a user's rules
- MatchDeduplicator: Collapse and order matches for the digest
- match_events: Match plus dedup in one call
"""

from .dedup import MatchDeduplicator, digest_sort_key
from .engine import RuleMatcher, match_events, rule_matches
from .rules import parse_notification_settings

__all__ = [
    "MatchDeduplicator",
    "RuleMatcher",
    "digest_sort_key",
    "match_events",
    "parse_notification_settings",
    "rule_matches",
]
