"""Event pack validation.

Turns an untrusted JSON document into an immutable EventPack. Document-level
problems raise ValidationError; individual malformed SKU entries and event
rows are dropped so that one bad row never blocks the whole batch.
"""

import json
from typing import Any, Dict, List, Union

from pydantic import ValidationError as PydanticValidationError

from market_alerts.domain.models import CommitRange, EventPack, PackEvent, SkuInfo, is_valid_sku
from market_alerts.logging import get_logger

from .exceptions import ValidationError

logger = get_logger(__name__, component="events")

MAX_EVENTS = 50_000
PACK_VERSION = 1


def load_event_pack(raw: Union[bytes, str]) -> EventPack:
    """Decode a JSON body and validate it as an event pack.

    Args:
        raw: Raw request/file body

    Returns:
        Validated EventPack

    Raises:
        ValidationError: If the body is not JSON or not a valid pack
    """
    try:
        document = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as e:
        raise ValidationError(f"Event pack is not valid JSON: {e}") from e
    return parse_event_pack(document)


def parse_event_pack(document: Any) -> EventPack:
    """Validate an untyped document into an EventPack.

    Args:
        document: Parsed JSON value

    Returns:
        Validated, immutable EventPack

    Raises:
        ValidationError: If version, generatedAt, skus, or events are malformed
    """
    if not isinstance(document, dict):
        raise ValidationError("Event pack must be a JSON object")

    errors = []
    version = document.get("version")
    # bool is an int subclass; JSON true must not pass as version 1
    if type(version) is not int or version != PACK_VERSION:
        errors.append(f"version must be {PACK_VERSION}, got {version!r}")

    generated_at = document.get("generatedAt")
    if not isinstance(generated_at, str) or not generated_at.strip():
        errors.append("generatedAt must be a non-empty string")

    raw_skus = document.get("skus", {})
    if not isinstance(raw_skus, dict):
        errors.append("skus must be an object")

    raw_events = document.get("events", [])
    if not isinstance(raw_events, list):
        errors.append("events must be an array")
    elif len(raw_events) > MAX_EVENTS:
        errors.append(f"events has {len(raw_events)} entries; the limit is {MAX_EVENTS}")

    if errors:
        raise ValidationError("Event pack validation failed", errors=errors)

    skus = _parse_skus(raw_skus)
    events = _parse_events(raw_events)

    dropped_skus = len(raw_skus) - len(skus)
    dropped_events = len(raw_events) - len(events)
    if dropped_skus or dropped_events:
        logger.warning(
            f"Dropped {dropped_skus} malformed SKU entries and {dropped_events} malformed events",
            extra={
                "event": "pack.rows.dropped",
                "dropped_skus": dropped_skus,
                "dropped_events": dropped_events,
            },
        )

    pack = EventPack(
        version=PACK_VERSION,
        generated_at=generated_at,
        skus=skus,
        events=tuple(events),
        range=_parse_range(document.get("range")),
        dropped_sku_count=dropped_skus,
        dropped_event_count=dropped_events,
    )

    logger.info(
        f"Event pack accepted: {len(pack.skus)} SKUs, {len(pack.events)} events",
        extra={
            "event": "pack.validated",
            "generated_at": pack.generated_at,
            "sku_count": len(pack.skus),
            "event_count": len(pack.events),
        },
    )
    return pack


def _parse_skus(raw_skus: Dict[str, Any]) -> Dict[str, SkuInfo]:
    """Parse the SKU map, dropping entries that break the token grammar."""
    skus: Dict[str, SkuInfo] = {}
    for key, entry in raw_skus.items():
        if not is_valid_sku(key) or not isinstance(entry, dict):
            logger.debug("Dropping SKU entry", extra={"sku_key": str(key)[:64]})
            continue
        data = dict(entry)
        data.setdefault("sku", key)
        try:
            skus[key] = SkuInfo.model_validate(data)
        except PydanticValidationError as e:
            logger.debug(
                "Dropping malformed SKU entry",
                extra={"sku_key": key, "error_count": e.error_count()},
            )
    return skus


def _parse_events(raw_events: List[Any]) -> List[PackEvent]:
    """Parse event rows, skipping rows with bad type, sku, or storeId."""
    events: List[PackEvent] = []
    for index, row in enumerate(raw_events):
        if not isinstance(row, dict):
            continue
        try:
            events.append(PackEvent.model_validate(row))
        except PydanticValidationError as e:
            logger.debug(
                "Skipping malformed event",
                extra={"index": index, "error_count": e.error_count()},
            )
    return events


def _parse_range(raw_range: Any):
    """Parse the optional commit range; malformed ranges are ignored."""
    if not isinstance(raw_range, dict):
        return None
    from_sha = raw_range.get("fromSha")
    to_sha = raw_range.get("toSha")
    if not isinstance(from_sha, str) or not isinstance(to_sha, str):
        return None
    return CommitRange(from_sha=from_sha, to_sha=to_sha)
