"""Payload resolution for digest templates.

This module turns a DeliveryJob into the context dictionary the digest
templates render: event groups, per-item badges and price lines, the summary
blurb, and the footer commit link.
"""

import math
from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

from market_alerts.config.models import DigestConfig
from market_alerts.domain.models import CommitRange, DeliveryJob, EventType, MatchedEvent

GROUP_TITLES = {
    EventType.PRICE_DROP: "On sale",
    EventType.GLOBAL_NEW: "Just landed",
    EventType.GLOBAL_RETURN: "Back in stock",
    EventType.OUT_OF_STOCK: "Out of stock",
}

EVENT_BADGES = {
    EventType.PRICE_DROP: ("ON SALE", "good"),
    EventType.GLOBAL_NEW: ("JUST LANDED", "accent"),
    EventType.GLOBAL_RETURN: ("BACK IN STOCK", "accent"),
    EventType.OUT_OF_STOCK: ("OUT OF STOCK", "bad"),
}

MAX_BADGES = 2
SHORT_SHA_LENGTH = 12
DETAILED_SUMMARY_THRESHOLD = 10

BRAND_STOP_WORDS = frozenset(
    {
        "single", "malt", "whisky", "whiskey", "bourbon", "rye", "cask", "reserve",
        "edition", "batch", "bottle", "proof", "year", "years", "yr", "yo", "y/o",
    }
)

INTRO_SHORT = "Tap any item to open it. Scroll to the bottom for the full report."
INTRO_LONG = "Lots of movement today. " + INTRO_SHORT


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_save_abs(value: Optional[float]) -> str:
    """Whole-dollar saving, e.g. ``$12``; empty when unknown."""
    if value is None or not math.isfinite(value):
        return ""
    return f"${_round_half_up(value)}"


def format_pct(value: Optional[float]) -> str:
    """Whole-percent saving, e.g. ``25%``; empty when unknown."""
    if value is None or not math.isfinite(value):
        return ""
    return f"{_round_half_up(abs(value))}%"


def pluralize(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def item_url(site_url: str, sku: str) -> str:
    """Link to the item page on the site."""
    return f"{site_url}/#/item/{quote(sku.strip(), safe='')}"


def brand_of(name: str) -> str:
    """Guess a brand from a display name.

    Takes up to three leading words, stopping at the first word with a digit
    or at a stop word once at least one word has been taken.
    """
    words: List[str] = []
    for word in name.split():
        if any(ch.isdigit() for ch in word):
            break
        if word.lower() in BRAND_STOP_WORDS and words:
            break
        words.append(word)
        if len(words) >= 3:
            break
    return " ".join(words)


def pick_badges(event: MatchedEvent) -> List[Dict[str, str]]:
    """Event badge first, then at most one computed market badge."""
    label, tone = EVENT_BADGES[event.event_type]
    badges = [{"label": label, "tone": tone}]

    computed = computed_badge(event)
    if computed:
        badges.append({"label": computed, "tone": "best" if event.is_cheapest_now else "neutral"})

    return badges[:MAX_BADGES]


def computed_badge(event: MatchedEvent) -> str:
    if event.is_cheapest_now:
        return "BEST PRICE"
    if event.market_new:
        return "NEW TO MARKET"
    if event.market_return:
        return "MARKET RETURN"
    if event.market_out:
        return "MARKET OUT"
    return ""


def build_item(event: MatchedEvent, site_url: str) -> Dict:
    """Template context for one digest entry."""
    old_price = (event.old_price or "").strip()
    new_price = (event.new_price or "").strip()
    save_abs = format_save_abs(event.drop_abs)
    save_pct = format_pct(event.drop_pct)

    save_parts = [save_abs] if save_abs else []
    if save_pct:
        save_parts.append(f"({save_pct})")

    return {
        "name": event.display_name,
        "sku": event.sku,
        "url": item_url(site_url, event.sku),
        "img": event.sku_img.strip(),
        "store_label": event.store_label.strip(),
        "listing_url": event.listing_url,
        "event_type": event.event_type.value,
        "is_price_drop": event.event_type == EventType.PRICE_DROP,
        "event_label": EVENT_BADGES[event.event_type][0],
        "computed_label": computed_badge(event),
        "badges": pick_badges(event),
        "old_price": old_price,
        "new_price": new_price,
        "save": " ".join(save_parts),
        "is_best_price": event.is_cheapest_now,
        "matched_rule_ids": list(event.matched_rule_ids),
    }


def group_events(events: Iterable[MatchedEvent], site_url: str) -> List[Dict]:
    """Group entries by event type, keeping the order in which types first appear."""
    groups: Dict[EventType, List[Dict]] = {}
    for event in events:
        groups.setdefault(event.event_type, []).append(build_item(event, site_url))

    return [
        {
            "event_type": event_type.value,
            "title": GROUP_TITLES[event_type],
            "count": len(items),
            "items": items,
        }
        for event_type, items in groups.items()
    ]


def _top(counter: Counter, n: int) -> List[Tuple[str, int]]:
    """Highest counts first, ties broken alphabetically."""
    return sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))[:n]


def _best_deal(events: Iterable[MatchedEvent]) -> Optional[MatchedEvent]:
    """Price drop with the highest ``2 * dropAbs + dropPct`` score (first one wins ties)."""
    best = None
    best_score = -1.0
    for event in events:
        if event.event_type != EventType.PRICE_DROP:
            continue
        drop_abs = event.drop_abs if event.drop_abs is not None and math.isfinite(event.drop_abs) else 0.0
        drop_pct = event.drop_pct if event.drop_pct is not None and math.isfinite(event.drop_pct) else 0.0
        score = drop_abs * 2 + drop_pct
        if score > best_score:
            best_score = score
            best = event
    return best


def best_deal_line(event: Optional[MatchedEvent]) -> str:
    if event is None:
        return ""
    save_abs = format_save_abs(event.drop_abs)
    save_pct = format_pct(event.drop_pct)
    save = " ".join(part for part in (save_abs, f"({save_pct})" if save_pct else "") if part)
    store = event.store_label.strip()
    at_store = f" at {store}" if store else ""
    best = " (best price)" if event.is_cheapest_now else ""
    return f"Best deal: {event.display_name}, save {save or '?'}{at_store}{best}."


def build_summary(events: List[MatchedEvent]) -> Dict:
    """Summary blurb shown above the groups.

    Digests with more than ten entries get the detailed form: best deal,
    busiest stores, and trending brands.
    """
    total = len(events)
    counts = Counter(event.event_type for event in events)
    new_stores: Counter = Counter()
    return_stores: Counter = Counter()
    brands: Counter = Counter()

    for event in events:
        store = event.store_label.strip()
        if store and event.event_type == EventType.GLOBAL_NEW:
            new_stores[store] += 1
        if store and event.event_type == EventType.GLOBAL_RETURN:
            return_stores[store] += 1
        brand = brand_of(event.sku_name)
        if brand:
            brands[brand] += 1

    type_line = (
        f"{pluralize(total, 'update')} · "
        f"{pluralize(counts[EventType.PRICE_DROP], 'sale')}, "
        f"{counts[EventType.GLOBAL_NEW]} just landed, "
        f"{counts[EventType.GLOBAL_RETURN]} back, "
        f"{counts[EventType.OUT_OF_STOCK]} out"
    )

    detailed = total > DETAILED_SUMMARY_THRESHOLD
    if not detailed:
        return {
            "detailed": False,
            "type_line": type_line,
            "highlights": [],
            "intro": INTRO_SHORT,
            "lines": [type_line + ".", INTRO_SHORT],
        }

    highlights = [best_deal_line(_best_deal(events))]
    top_new = _top(new_stores, 3)
    if top_new:
        highlights.append("Just landed: " + ", ".join(f"{k} ({v})" for k, v in top_new) + ".")
    top_return = _top(return_stores, 3)
    if top_return:
        highlights.append("Back in stock: " + ", ".join(f"{k} ({v})" for k, v in top_return) + ".")
    top_brands = _top(brands, 4)
    if top_brands:
        highlights.append("Trending: " + ", ".join(k for k, _ in top_brands) + ".")
    highlights = [line for line in highlights if line]

    return {
        "detailed": True,
        "type_line": type_line,
        "highlights": highlights,
        "intro": INTRO_LONG,
        "lines": [type_line + "."] + highlights + [INTRO_LONG],
    }


def build_footer(digest_config: DigestConfig, commit_range: Optional[CommitRange]) -> Dict:
    """Commit reference and report link for the footer."""
    sha = commit_range.to_sha.strip() if commit_range else ""
    repo_url = digest_config.repo_url

    if sha and repo_url:
        report_url = f"{repo_url}/commit/{quote(sha, safe='')}"
    else:
        report_url = repo_url or digest_config.site_url

    return {
        "commit_short": sha[:SHORT_SHA_LENGTH] if sha else "unknown",
        "report_url": report_url,
    }


def build_digest_context(
    job: DeliveryJob,
    digest_config: DigestConfig,
    commit_range: Optional[CommitRange] = None,
) -> Dict:
    """Build the template context for one recipient's digest.

    Args:
        job: Delivery job with deduplicated, sorted events
        digest_config: Branding and link settings
        commit_range: Commit range of the pack, if the producer sent one

    Returns:
        Dictionary with keys brand_name, total, groups, summary, footer,
        site_url, recipient and user_id
    """
    events = list(job.events)
    return {
        "brand_name": digest_config.brand_name,
        "site_url": digest_config.site_url,
        "recipient": job.recipient_email,
        "user_id": job.user_id,
        "total": len(events),
        "groups": group_events(events, digest_config.site_url),
        "summary": build_summary(events),
        "footer": build_footer(digest_config, commit_range),
    }
