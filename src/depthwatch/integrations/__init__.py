"""External system adapters - Polymarket market data."""

# Re-export commonly used components
from depthwatch.integrations.polymarket.types import PolymarketSettings, RawBook
from depthwatch.integrations.polymarket.clob import SnapshotClient
from depthwatch.integrations.polymarket.websocket import ConnectionManager, ConnectionStatus

__all__ = [
    "PolymarketSettings",
    "RawBook",
    "SnapshotClient",
    "ConnectionManager",
    "ConnectionStatus",
]
