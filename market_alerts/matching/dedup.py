"""Deduplication of a user's matches into digest entries.

Market-wide matches collapse on the market key and store matches on the store
key. A market entry is dropped when a store entry already covers the same
market, so a user never gets both "new on the market" and "new at store X" for
one listing change.
"""

import logging
from typing import Dict, Iterable, List

from market_alerts.domain.models import MatchedEvent

logger = logging.getLogger(__name__)


def digest_sort_key(match: MatchedEvent):
    """Total ordering used for digests: event type, SKU name, store id."""
    return (match.event_type.value, match.sku_name, match.store_id)


class MatchDeduplicator:
    """Collapses repeated (event, rule) hits into one entry per event."""

    def deduplicate(self, matches: Iterable[MatchedEvent]) -> List[MatchedEvent]:
        """Merge duplicate matches and sort them for rendering.

        Algorithm:
        1. Route each match to the market map or the store map by its
           across_market flag; a repeat key appends the rule id once
        2. Drop market entries whose marketId a store entry already covers
        3. Concatenate market then store entries and stable-sort them

        Running this on its own output returns the same list.

        Args:
            matches: Raw hits in evaluation order

        Returns:
            Deduplicated, sorted matches
        """
        market: Dict[str, MatchedEvent] = {}
        store: Dict[str, MatchedEvent] = {}

        for match in matches:
            if match.across_market:
                self._merge(market, match.market_key, match)
            else:
                self._merge(store, match.store_key, match)

        covered = {entry.market_id for entry in store.values()}
        surviving = [entry for entry in market.values() if entry.market_id not in covered]

        result = sorted(surviving + list(store.values()), key=digest_sort_key)

        dropped = len(market) - len(surviving)
        if dropped:
            logger.debug(
                "Dropped market-wide matches covered by store matches",
                extra={"dropped": dropped, "remaining": len(result)},
            )
        return result

    @staticmethod
    def _merge(entries: Dict[str, MatchedEvent], key: str, match: MatchedEvent) -> None:
        """Insert a match or append its rule ids to the existing entry."""
        existing = entries.get(key)
        if existing is None:
            entries[key] = match
            return

        rule_ids = list(existing.matched_rule_ids)
        for rule_id in match.matched_rule_ids:
            if rule_id not in rule_ids:
                rule_ids.append(rule_id)
        if len(rule_ids) != len(existing.matched_rule_ids):
            entries[key] = existing.model_copy(update={"matched_rule_ids": tuple(rule_ids)})
