"""Polymarket-specific types and settings.

Wire payloads are normalized into these shapes at the ingestion boundary;
nothing past the normalizer looks at raw JSON.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from depthwatch.domain.orderbook import LevelChange, RawLevel

if TYPE_CHECKING:
    from depthwatch.core.config import ConfigManager

DEFAULT_CLOB_URL = "https://clob.polymarket.com"
DEFAULT_WS_URL = "wss://ws-subscriptions-clob.polymarket.com/ws/market"


@dataclass(frozen=True)
class PolymarketSettings:
    """Connection settings for Polymarket's public market data.

    Attributes:
        clob_url: CLOB HTTP API base URL (serves the /book snapshot).
        ws_url: WebSocket URL of the market channel.
        http_proxy: Optional HTTP proxy for REST requests.
        request_timeout: REST request timeout in seconds.
        level_format: Wire shape of book levels ("object" or "tuple").
    """

    clob_url: str = DEFAULT_CLOB_URL
    ws_url: str = DEFAULT_WS_URL
    http_proxy: Optional[str] = None
    request_timeout: float = 10.0
    level_format: str = "object"

    @classmethod
    def from_config(cls, config: "ConfigManager") -> "PolymarketSettings":
        return cls(
            clob_url=config.get("polymarket.clob_url", DEFAULT_CLOB_URL),
            ws_url=config.get("polymarket.ws_url", DEFAULT_WS_URL),
            http_proxy=config.get("polymarket.http_proxy") or None,
            request_timeout=config.get_float("polymarket.request_timeout_seconds", 10.0),
            level_format=config.get("feed.level_format", "object"),
        )


@dataclass(frozen=True)
class RawBook:
    """A full book as returned by GET /book or a `book` stream event.

    Attributes:
        asset_id: Token ID the book is for.
        market: Condition ID of the parent market.
        timestamp: Exchange time of the book.
        hash: Content hash of the book.
        bids: Bid levels as sent (unsorted).
        asks: Ask levels as sent (unsorted).
        sequence: Feed sequence number, when the feed carries one.
    """

    asset_id: str
    market: str
    timestamp: datetime
    hash: Optional[str]
    bids: tuple[RawLevel, ...] = field(default_factory=tuple)
    asks: tuple[RawLevel, ...] = field(default_factory=tuple)
    sequence: Optional[int] = None


@dataclass(frozen=True)
class PriceChange:
    """One level update from a `price_change` stream event."""

    asset_id: str
    change: LevelChange
    hash: Optional[str] = None
