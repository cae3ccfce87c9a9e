"""Core domain models for event packs, notification rules, and digests.

This module defines the data structures used throughout the application:
- EventPack / SkuInfo / PackEvent: validated batch of market events
- NotificationRule / RuleFilters / NotificationSettings: a user's saved rules
- MatchedEvent: an event projected for a digest, with the rule ids that matched it
- DeliveryJob: one recipient's digest for a pipeline run
"""

import math
import re
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

SKU_PATTERN = re.compile(r"^[A-Za-z0-9:]{1,256}$")
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

MAX_TOKEN_LENGTH = 256


class EventType(str, Enum):
    """Kinds of market events a pack can carry."""

    PRICE_DROP = "PRICE_DROP"
    GLOBAL_NEW = "GLOBAL_NEW"
    GLOBAL_RETURN = "GLOBAL_RETURN"
    OUT_OF_STOCK = "OUT_OF_STOCK"


class RuleScope(str, Enum):
    """Which SKUs a rule applies to."""

    ALL = "all"
    SHORTLIST = "shortlist"


def is_valid_sku(value: Any) -> bool:
    """Check a value against the SKU token grammar (alphanumeric plus ':')."""
    return isinstance(value, str) and bool(SKU_PATTERN.match(value))


def finite_number(value: Any) -> Optional[float]:
    """Return value as a float if it is a finite real number, else None.

    Booleans are rejected even though they are ints in Python.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


class _PackModel(BaseModel):
    """Base for pack models: camelCase aliases, immutable once built."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class PriceRange(_PackModel):
    """Current low/high price across the market."""

    min: float
    max: float


class CheapestOffer(_PackModel):
    """Cheapest current price and the stores offering it."""

    price_num: float
    store_ids: Tuple[str, ...] = ()


class MarketOffer(_PackModel):
    """One store's current offer for a SKU."""

    store_id: str
    store_label: str = ""
    url: str = ""
    price: str = ""
    price_num: Optional[float] = None


class SkuInfo(_PackModel):
    """Canonical SKU with display data, alias members, and price summary."""

    sku: str
    name: str = ""
    img: str = ""
    members: Tuple[str, ...] = ()
    price_range_now: Optional[PriceRange] = None
    cheapest_now: Optional[CheapestOffer] = None
    offers_now: Tuple[MarketOffer, ...] = ()

    @field_validator("sku")
    @classmethod
    def validate_sku(cls, v: str) -> str:
        """SKU ids must follow the token grammar."""
        if not is_valid_sku(v):
            raise ValueError(f"invalid sku token: {v!r}")
        return v

    @field_validator("members", mode="before")
    @classmethod
    def drop_invalid_members(cls, v: Any) -> Tuple[str, ...]:
        """Keep only well-formed member ids, in order, without repeats."""
        if not isinstance(v, (list, tuple)):
            return ()
        kept: List[str] = []
        for member in v:
            if is_valid_sku(member) and member not in kept:
                kept.append(member)
        return tuple(kept)

    @field_validator("name", "img", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        """Display fields fall back to an empty string."""
        return v if isinstance(v, str) else ""

    @field_validator("price_range_now", "cheapest_now", mode="before")
    @classmethod
    def tolerate_bad_summary(cls, v: Any) -> Any:
        """Price summaries are advisory; anything that is not an object is dropped."""
        return v if isinstance(v, dict) else None

    @field_validator("offers_now", mode="before")
    @classmethod
    def tolerate_bad_offers(cls, v: Any) -> Any:
        """Offers that are not objects with a storeId are dropped."""
        if not isinstance(v, list):
            return ()
        return tuple(
            offer for offer in v if isinstance(offer, dict) and isinstance(offer.get("storeId"), str)
        )


class PackEvent(_PackModel):
    """A single market event for one SKU at one store.

    PRICE_DROP-only fields are cleared on every other event type. Missing
    ``id`` and ``marketId`` are derived from the event's natural key.
    """

    id: str = ""
    market_id: str = ""
    event_type: EventType
    sku: str
    store_id: str = ""
    store_label: str = ""
    listing_url: str = ""

    market_new: bool = False
    market_return: bool = False
    market_out: bool = False
    base_in_stock_count: int = 0
    head_in_stock_count: int = 0

    # PRICE_DROP only
    old_price: Optional[str] = None
    new_price: Optional[str] = None
    drop_abs: Optional[float] = None
    drop_pct: Optional[float] = None
    is_cheapest_now: bool = False

    @field_validator("sku")
    @classmethod
    def validate_sku(cls, v: str) -> str:
        """Event SKU must follow the token grammar."""
        if not is_valid_sku(v):
            raise ValueError(f"invalid sku token: {v!r}")
        return v

    @field_validator("store_id", mode="before")
    @classmethod
    def validate_store_id(cls, v: Any) -> str:
        """Store ids are short strings without control characters."""
        if v is None:
            return ""
        if not isinstance(v, str):
            raise ValueError("storeId must be a string")
        if len(v) > MAX_TOKEN_LENGTH or CONTROL_CHARS.search(v):
            raise ValueError("storeId is too long or contains control characters")
        return v

    @field_validator("id", "market_id", "store_label", "listing_url", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        """Optional text fields fall back to an empty string."""
        return v if isinstance(v, str) else ""

    @field_validator("old_price", "new_price", mode="before")
    @classmethod
    def coerce_price(cls, v: Any) -> Optional[str]:
        """Prices are display strings; anything else is treated as absent."""
        return v if isinstance(v, str) else None

    @field_validator("drop_abs", "drop_pct", mode="before")
    @classmethod
    def coerce_drop(cls, v: Any) -> Optional[float]:
        """Drop amounts must be finite numbers to be usable."""
        return finite_number(v)

    @field_validator("market_new", "market_return", "market_out", "is_cheapest_now", mode="before")
    @classmethod
    def strict_flag(cls, v: Any) -> bool:
        """Flags are only set by a literal JSON true."""
        return v is True

    @field_validator("base_in_stock_count", "head_in_stock_count", mode="before")
    @classmethod
    def coerce_count(cls, v: Any) -> int:
        """Stock counts fall back to zero."""
        if isinstance(v, bool) or not isinstance(v, int):
            return 0
        return v

    @model_validator(mode="before")
    @classmethod
    def clear_price_drop_fields(cls, data: Any) -> Any:
        """Ignore PRICE_DROP-only fields on every other event type."""
        if isinstance(data, dict) and data.get("eventType", data.get("event_type")) != "PRICE_DROP":
            data = {
                k: v
                for k, v in data.items()
                if k
                not in {
                    "oldPrice", "newPrice", "dropAbs", "dropPct", "isCheapestNow",
                    "old_price", "new_price", "drop_abs", "drop_pct", "is_cheapest_now",
                }
            }
        return data

    @model_validator(mode="after")
    def fill_natural_keys(self):
        """Derive id and marketId when the producer left them out."""
        if not self.id:
            object.__setattr__(self, "id", f"{self.event_type.value}|{self.sku}|{self.store_id}")
        if not self.market_id:
            object.__setattr__(self, "market_id", f"{self.event_type.value}|{self.sku}")
        return self


class CommitRange(_PackModel):
    """Source revision range the pack was generated from."""

    from_sha: str = ""
    to_sha: str = ""


class EventPack(_PackModel):
    """Validated batch of SKUs and events for one pipeline run."""

    version: Literal[1] = 1
    generated_at: str
    skus: Dict[str, SkuInfo] = Field(default_factory=dict)
    events: Tuple[PackEvent, ...] = ()
    range: Optional[CommitRange] = None
    dropped_sku_count: int = 0
    dropped_event_count: int = 0

    def sku_info(self, sku: str) -> Optional[SkuInfo]:
        """Look up a SKU's info by canonical id."""
        return self.skus.get(sku)


class RuleFilters(BaseModel):
    """Optional narrowing filters on a notification rule."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    store_id: Optional[str] = Field(None, max_length=MAX_TOKEN_LENGTH)
    across_market: Optional[bool] = None
    keywords_any: Tuple[str, ...] = ()
    keywords_none: Tuple[str, ...] = ()

    # PRICE_DROP only
    min_drop_abs: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    min_drop_pct: Optional[float] = Field(None, ge=0, le=100, allow_inf_nan=False)
    require_cheapest_now: bool = False

    @field_validator("keywords_any", "keywords_none", mode="before")
    @classmethod
    def normalize_keywords(cls, v: Any) -> Tuple[str, ...]:
        """Lowercase and strip keywords; drop empty ones."""
        if v is None:
            return ()
        if not isinstance(v, (list, tuple)):
            raise ValueError("keywords must be a list of strings")
        normalized = []
        for keyword in v:
            if not isinstance(keyword, str) or len(keyword) > MAX_TOKEN_LENGTH:
                raise ValueError("keywords must be short strings")
            stripped = keyword.strip().lower()
            if stripped:
                normalized.append(stripped)
        return tuple(normalized)


class NotificationRule(BaseModel):
    """A user's saved rule selecting which events to email about."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1, max_length=128)
    enabled: bool = True
    scope: RuleScope = RuleScope.ALL
    event_type: EventType
    filters: RuleFilters = Field(default_factory=RuleFilters)

    @field_validator("filters", mode="before")
    @classmethod
    def default_filters(cls, v: Any) -> Any:
        """A null filters object means no filters."""
        return {} if v is None else v

    @property
    def across_market(self) -> bool:
        """Effective acrossMarket flag.

        An explicit filter value wins. Otherwise GLOBAL_NEW rules fire
        market-wide and every other type is store-scoped.
        """
        if self.filters.across_market is not None:
            return self.filters.across_market
        return self.event_type is EventType.GLOBAL_NEW


MAX_RULES_PER_USER = 50


class NotificationSettings(BaseModel):
    """Versioned rule configuration stored on a user's profile."""

    model_config = ConfigDict(frozen=True)

    version: Literal[1] = 1
    rules: Tuple[NotificationRule, ...] = Field(default=(), max_length=MAX_RULES_PER_USER)

    @model_validator(mode="after")
    def validate_unique_ids(self):
        """Rule ids must be unique per user."""
        seen = set()
        for rule in self.rules:
            if rule.id in seen:
                raise ValueError(f"Duplicate rule id: {rule.id}")
            seen.add(rule.id)
        return self

    @property
    def enabled_rules(self) -> Tuple[NotificationRule, ...]:
        """Rules that can currently match."""
        return tuple(rule for rule in self.rules if rule.enabled)


class MatchedEvent(BaseModel):
    """An event projected with its SKU info and the rules that matched it.

    ``across_market`` records which dedup map the match belongs to: market-wide
    matches collapse on ``market_id``, store matches on ``event_id``.
    """

    model_config = ConfigDict(frozen=True)

    event_id: str
    market_id: str
    event_type: EventType
    sku: str
    sku_name: str = ""
    sku_img: str = ""
    store_id: str = ""
    store_label: str = ""
    listing_url: str = ""
    market_new: bool = False
    market_return: bool = False
    market_out: bool = False
    old_price: Optional[str] = None
    new_price: Optional[str] = None
    drop_abs: Optional[float] = None
    drop_pct: Optional[float] = None
    is_cheapest_now: bool = False
    across_market: bool = False
    matched_rule_ids: Tuple[str, ...] = ()

    @classmethod
    def from_event(
        cls,
        event: PackEvent,
        sku_info: Optional[SkuInfo],
        rule_id: str,
        across_market: bool,
    ) -> "MatchedEvent":
        """Project a pack event for a single matching rule."""
        return cls(
            event_id=event.id,
            market_id=event.market_id,
            event_type=event.event_type,
            sku=event.sku,
            sku_name=sku_info.name if sku_info else "",
            sku_img=sku_info.img if sku_info else "",
            store_id=event.store_id,
            store_label=event.store_label,
            listing_url=event.listing_url,
            market_new=event.market_new,
            market_return=event.market_return,
            market_out=event.market_out,
            old_price=event.old_price,
            new_price=event.new_price,
            drop_abs=event.drop_abs,
            drop_pct=event.drop_pct,
            is_cheapest_now=event.is_cheapest_now,
            across_market=across_market,
            matched_rule_ids=(rule_id,),
        )

    @property
    def market_key(self) -> str:
        """Dedup key for market-wide matches."""
        return self.market_id or f"{self.event_type.value}|{self.sku}"

    @property
    def store_key(self) -> str:
        """Dedup key for store-scoped matches."""
        return self.event_id or f"{self.event_type.value}|{self.sku}|{self.store_id}"

    @property
    def display_name(self) -> str:
        """Name shown in digests, falling back to the SKU id."""
        return self.sku_name or f"(SKU {self.sku})"


class DeliveryJob(BaseModel):
    """One recipient's digest for a pipeline run."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    recipient_email: str
    events: Tuple[MatchedEvent, ...]

    @property
    def event_count(self) -> int:
        """Number of digest entries."""
        return len(self.events)
