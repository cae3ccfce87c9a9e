"""Rule matching engine for evaluating pack events against user rules.

This module implements the matching logic that:
1. Checks each event against each of a user's enabled rules
2. Loads the user's favourites only when a shortlist rule needs them
3. Projects every (event, rule) hit into a MatchedEvent for deduplication
"""

import logging
from typing import Callable, Collection, Iterable, List, Optional, Sequence

from market_alerts.domain.models import (
    EventPack,
    EventType,
    MatchedEvent,
    NotificationRule,
    PackEvent,
    RuleScope,
    SkuInfo,
)

from .dedup import MatchDeduplicator

logger = logging.getLogger(__name__)

FavouritesLoader = Callable[[], Iterable[str]]

# Market-wide flag a rule needs when it fires across the whole market
MARKET_FLAGS = {
    EventType.GLOBAL_NEW: "market_new",
    EventType.GLOBAL_RETURN: "market_return",
    EventType.OUT_OF_STOCK: "market_out",
}


def rule_matches(
    rule: NotificationRule,
    event: PackEvent,
    favourites: Optional[Collection[str]] = None,
    sku_info: Optional[SkuInfo] = None,
) -> bool:
    """Decide whether a single rule matches a single event.

    Checks run in a fixed order and the first failing check rejects:
    1. rule is enabled and its eventType equals the event's
    2. shortlist scope: the SKU or one of its alias members is a favourite
    3. storeId filter (when set) equals the event's storeId
    4. keywordsAny / keywordsNone against the SKU display name
    5. market flag when the rule fires across the market
    6. PRICE_DROP thresholds and the cheapest-now requirement

    Args:
        rule: Rule to evaluate
        event: Pack event
        favourites: The user's saved SKU ids (only consulted for shortlist rules)
        sku_info: SKU info for the event's SKU, when the pack has it

    Returns:
        True if every check passes
    """
    if not rule.enabled or rule.event_type is not event.event_type:
        return False

    if rule.scope is RuleScope.SHORTLIST:
        if not favourites:
            return False
        aliases = sku_info.members if sku_info else ()
        if event.sku not in favourites and not any(m in favourites for m in aliases):
            return False

    filters = rule.filters
    if filters.store_id and filters.store_id != event.store_id:
        return False

    if filters.keywords_any or filters.keywords_none:
        name = (sku_info.name if sku_info else "").lower()
        if filters.keywords_any and not any(k in name for k in filters.keywords_any):
            return False
        if any(k in name for k in filters.keywords_none):
            return False

    if event.event_type is EventType.PRICE_DROP:
        return _price_drop_passes(rule, event)

    if rule.across_market and not getattr(event, MARKET_FLAGS[event.event_type]):
        return False

    return True


def _price_drop_passes(rule: NotificationRule, event: PackEvent) -> bool:
    """Apply the PRICE_DROP-only thresholds."""
    filters = rule.filters
    if filters.min_drop_abs is not None:
        if event.drop_abs is None or event.drop_abs < filters.min_drop_abs:
            return False
    if filters.min_drop_pct is not None:
        if event.drop_pct is None or event.drop_pct < filters.min_drop_pct:
            return False
    if filters.require_cheapest_now and event.is_cheapest_now is not True:
        return False
    return True


class RuleMatcher:
    """Evaluates one pack's events against users' rules.

    Each user only walks the events whose type one of their rules targets.
    """

    def __init__(self, pack: EventPack, logger_instance: logging.Logger = None):
        """Initialize RuleMatcher.

        Args:
            pack: Validated event pack for this run
            logger_instance: Optional logger instance (defaults to module logger)
        """
        self.pack = pack
        self.logger = logger_instance or logger

    def match_user(
        self,
        rules: Sequence[NotificationRule],
        favourites_loader: Optional[FavouritesLoader] = None,
    ) -> List[MatchedEvent]:
        """Collect every (event, rule) hit for one user, before deduplication.

        The favourites loader is called at most once, and only when an enabled
        rule has shortlist scope.

        Args:
            rules: The user's rules (disabled ones are ignored)
            favourites_loader: Zero-argument callable returning saved SKU ids

        Returns:
            MatchedEvent per hit, in pack event order then rule order
        """
        enabled = [rule for rule in rules if rule.enabled]
        if not enabled:
            return []

        favourites: Optional[frozenset] = None
        if favourites_loader is not None and any(r.scope is RuleScope.SHORTLIST for r in enabled):
            favourites = frozenset(favourites_loader())

        wanted_types = {rule.event_type for rule in enabled}
        candidates = [
            event
            for event in self.pack.events
            if event.event_type in wanted_types
        ]

        hits: List[MatchedEvent] = []
        for event in candidates:
            sku_info = self.pack.sku_info(event.sku)
            for rule in enabled:
                if rule_matches(rule, event, favourites, sku_info):
                    hits.append(MatchedEvent.from_event(event, sku_info, rule.id, rule.across_market))

        self.logger.debug(
            "Evaluated rules against pack",
            extra={
                "rules": len(enabled),
                "candidate_events": len(candidates),
                "hits": len(hits),
                "favourites_loaded": favourites is not None,
            },
        )
        return hits


def match_events(
    pack: EventPack,
    rules: Sequence[NotificationRule],
    favourites: Optional[Iterable[str]] = None,
) -> List[MatchedEvent]:
    """Match a pack against one user's rules and deduplicate the result.

    Deterministic: identical inputs give an identical, identically ordered list.

    Args:
        pack: Validated event pack
        rules: The user's rules
        favourites: The user's saved SKU ids, if known

    Returns:
        Deduplicated, sorted matches
    """
    saved = tuple(favourites or ())
    hits = RuleMatcher(pack).match_user(rules, lambda: saved)
    return MatchDeduplicator().deduplicate(hits)
