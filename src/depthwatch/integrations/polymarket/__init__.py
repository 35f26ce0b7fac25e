# Polymarket Integration Layer
# CLOB book snapshots, wire normalization, and WebSocket streaming

from depthwatch.integrations.polymarket.types import (
    DEFAULT_CLOB_URL,
    DEFAULT_WS_URL,
    PolymarketSettings,
    PriceChange,
    RawBook,
)
from depthwatch.integrations.polymarket.normalizer import (
    LevelFormat,
    LevelMode,
    derive_update_id,
    get_level_decoder,
    parse_book,
    parse_price_changes,
)
from depthwatch.integrations.polymarket.clob import SnapshotClient
from depthwatch.integrations.polymarket.websocket import (
    ConnectionManager,
    ConnectionMetrics,
    ConnectionStatus,
    open_websocket,
)

__all__ = [
    # Types
    "DEFAULT_CLOB_URL",
    "DEFAULT_WS_URL",
    "PolymarketSettings",
    "PriceChange",
    "RawBook",
    # Normalizer
    "LevelFormat",
    "LevelMode",
    "derive_update_id",
    "get_level_decoder",
    "parse_book",
    "parse_price_changes",
    # Clients
    "SnapshotClient",
    "ConnectionManager",
    "ConnectionMetrics",
    "ConnectionStatus",
    "open_websocket",
]
