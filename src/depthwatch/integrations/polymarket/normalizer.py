"""Normalization of Polymarket wire payloads.

Two level shapes exist on the wire:
- {"price": "0.50", "size": "100"}  (CLOB REST /book and the market channel)
- [0.50, 100]                        (older feed versions)

Which one a feed uses is a configuration choice (`feed.level_format`); the
matching decoder is looked up once and passed down, so nothing downstream
has to guess the shape of a level.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

import structlog

from depthwatch.core.errors import InvalidConfiguration, ValidationError
from depthwatch.domain.numeric import to_decimal
from depthwatch.domain.orderbook import LevelChange, RawLevel, Side
from depthwatch.integrations.polymarket.types import PriceChange, RawBook

log = structlog.get_logger()

LevelDecoder = Callable[[Any], tuple[Any, Any]]


class LevelFormat(str, Enum):
    """Wire shape of a single book level."""

    OBJECT = "object"
    TUPLE = "tuple"


class LevelMode(str, Enum):
    """How zero-size levels are treated.

    SNAPSHOT: a zero size means "no level" and is dropped.
    DELTA: a zero size means "remove this level" and is kept.
    """

    SNAPSHOT = "snapshot"
    DELTA = "delta"


_SIDE_ALIASES = {
    "bid": Side.BID,
    "buy": Side.BID,
    "ask": Side.ASK,
    "sell": Side.ASK,
}


def decode_object_level(level: Any) -> tuple[Any, Any]:
    """Decode {"price": p, "size": s}."""
    if not isinstance(level, dict):
        raise ValidationError(f"expected price/size object, got {type(level).__name__}")
    if "price" not in level or "size" not in level:
        raise ValidationError(f"level is missing price or size: {level!r}")
    return level["price"], level["size"]


def decode_tuple_level(level: Any) -> tuple[Any, Any]:
    """Decode [p, s]."""
    if not isinstance(level, (list, tuple)) or len(level) < 2:
        raise ValidationError(f"expected [price, size] pair, got {level!r}")
    return level[0], level[1]


_DECODERS: dict[LevelFormat, LevelDecoder] = {
    LevelFormat.OBJECT: decode_object_level,
    LevelFormat.TUPLE: decode_tuple_level,
}


def get_level_decoder(level_format: str) -> LevelDecoder:
    """Look up the decoder for a configured level format.

    Raises:
        InvalidConfiguration: For an unknown format name.
    """
    try:
        return _DECODERS[LevelFormat(str(level_format).lower())]
    except ValueError as e:
        choices = ", ".join(f.value for f in LevelFormat)
        raise InvalidConfiguration(
            f"unknown level format {level_format!r} (expected one of: {choices})"
        ) from e


def normalize_level(
    raw: Any,
    decoder: LevelDecoder,
    mode: LevelMode = LevelMode.SNAPSHOT,
) -> Optional[RawLevel]:
    """Convert one wire level to a RawLevel.

    Returns None for a zero-size level in snapshot mode.

    Raises:
        ValidationError: If the price is not a positive number or the size is
            not a non-negative number.
    """
    raw_price, raw_size = decoder(raw)
    price = to_decimal(raw_price, "price")
    size = to_decimal(raw_size, "size")

    if price <= 0:
        raise ValidationError(f"price must be positive, got {price}")
    if size < 0:
        raise ValidationError(f"size must be non-negative, got {size}")
    if size == 0 and mode is LevelMode.SNAPSHOT:
        return None
    return RawLevel(price=price, size=size)


def normalize_levels(
    raw_levels: Any,
    decoder: LevelDecoder,
    mode: LevelMode = LevelMode.SNAPSHOT,
) -> tuple[RawLevel, ...]:
    """Convert a list of wire levels, preserving their order.

    A single malformed level fails the whole list.
    """
    if raw_levels is None:
        return ()
    if not isinstance(raw_levels, (list, tuple)):
        raise ValidationError(f"expected a list of levels, got {type(raw_levels).__name__}")

    result = []
    for raw in raw_levels:
        level = normalize_level(raw, decoder, mode)
        if level is not None:
            result.append(level)
    return tuple(result)


def parse_side(value: Any) -> Side:
    """Map wire side names (BUY/SELL, bid/ask) to Side."""
    side = _SIDE_ALIASES.get(str(value).lower())
    if side is None:
        raise ValidationError(f"unknown side {value!r}")
    return side


def derive_update_id(book_hash: Optional[str]) -> int:
    """Synthetic update id from a book's content hash.

    The market channel carries no sequence numbers, so the first eight hex
    digits after the 0x prefix stand in for one. Returns 0 when the hash is
    missing or not hex.
    """
    if not book_hash:
        return 0
    digits = book_hash[2:10] if book_hash.lower().startswith("0x") else book_hash[:8]
    try:
        return int(digits, 16)
    except ValueError:
        return 0


def parse_sequence(value: Any) -> Optional[int]:
    """Sequence number of a message, or None when the feed sends none.

    Raises:
        ValidationError: If a sequence is present but not a non-negative integer.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"sequence must be an integer, got {value!r}")
    try:
        sequence = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"sequence must be an integer, got {value!r}") from e
    if sequence < 0:
        raise ValidationError(f"sequence must be non-negative, got {sequence}")
    return sequence


def parse_timestamp(value: Any) -> datetime:
    """Epoch milliseconds (str or number) to an aware UTC datetime.

    Falls back to the current time when the value is absent or unparseable.
    """
    if value is None or value == "":
        return datetime.now(timezone.utc)
    try:
        millis = int(float(value))
    except (TypeError, ValueError):
        log.debug("unparseable_timestamp", value=value)
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def parse_book(payload: Any, decoder: LevelDecoder) -> RawBook:
    """Parse a full book from REST (`bids`/`asks`) or stream (`buys`/`sells`).

    Raises:
        ValidationError: If the payload is not an object, has no asset id, or
            contains a malformed level.
    """
    if not isinstance(payload, dict):
        raise ValidationError(f"book payload must be an object, got {type(payload).__name__}")

    # Token IDs are large integers - always keep them as strings
    asset_id = str(payload.get("asset_id") or payload.get("token_id") or "")
    if not asset_id:
        raise ValidationError("book payload has no asset_id")

    bids = payload["bids"] if "bids" in payload else payload.get("buys")
    asks = payload["asks"] if "asks" in payload else payload.get("sells")

    return RawBook(
        asset_id=asset_id,
        market=str(payload.get("market") or ""),
        timestamp=parse_timestamp(payload.get("timestamp")),
        hash=payload.get("hash"),
        bids=normalize_levels(bids, decoder, LevelMode.SNAPSHOT),
        asks=normalize_levels(asks, decoder, LevelMode.SNAPSHOT),
        sequence=parse_sequence(payload.get("sequence")),
    )


def parse_price_changes(payload: Any) -> tuple[PriceChange, ...]:
    """Parse a `price_change` event into per-level delta updates.

    Handles both layouts seen on the market channel:
    - {"price_changes": [{"asset_id", "price", "size", "side", "hash"}, ...]}
    - {"asset_id": ..., "changes": [{"price", "size", "side"}, ...]}

    Entries that only carry best bid/ask (no price or size) are skipped.
    """
    if not isinstance(payload, dict):
        raise ValidationError(f"price_change payload must be an object, got {type(payload).__name__}")

    entries = payload.get("price_changes")
    if entries is None:
        entries = payload.get("changes", [])
    if not isinstance(entries, list):
        raise ValidationError("price_change entries must be a list")

    default_asset = str(payload.get("asset_id") or "")
    result = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValidationError(f"price_change entry must be an object, got {entry!r}")
        if "price" not in entry and "size" not in entry:
            continue

        asset_id = str(entry.get("asset_id") or default_asset)
        if not asset_id:
            raise ValidationError("price_change entry has no asset_id")

        level = normalize_level(entry, decode_object_level, LevelMode.DELTA)
        result.append(
            PriceChange(
                asset_id=asset_id,
                change=LevelChange(side=parse_side(entry.get("side")), level=level),
                hash=entry.get("hash") or payload.get("hash"),
            )
        )
    return tuple(result)
