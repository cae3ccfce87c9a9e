"""Domain models for market alert digests."""

from .models import (
    DeliveryJob,
    EventPack,
    EventType,
    MatchedEvent,
    NotificationRule,
    NotificationSettings,
    PackEvent,
    RuleFilters,
    RuleScope,
    SkuInfo,
)

__all__ = [
    "DeliveryJob",
    "EventPack",
    "EventType",
    "MatchedEvent",
    "NotificationRule",
    "NotificationSettings",
    "PackEvent",
    "RuleFilters",
    "RuleScope",
    "SkuInfo",
]
