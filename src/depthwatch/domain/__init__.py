"""Domain models - pure data structures and computations with no I/O."""

from depthwatch.domain.aggregation import (
    AggregatedBook,
    AggregatedLevel,
    aggregate,
    limit_rows,
)
from depthwatch.domain.analytics import (
    DepthBand,
    FillLevel,
    OrderBookStats,
    PriceImpactResult,
    depth_at_percentage,
    simulate_fill,
    stats,
)
from depthwatch.domain.orderbook import (
    LevelChange,
    Order,
    OrderBook,
    RawLevel,
    SequencePolicy,
    Side,
    SortedPriceLevels,
    apply_delta,
    apply_deltas,
    empty,
    initialize,
    replace,
    snapshot,
)

__all__ = [
    # Book state
    "Order",
    "OrderBook",
    "RawLevel",
    "LevelChange",
    "Side",
    "SequencePolicy",
    "SortedPriceLevels",
    "empty",
    "initialize",
    "replace",
    "apply_delta",
    "apply_deltas",
    "snapshot",
    # Aggregation
    "AggregatedBook",
    "AggregatedLevel",
    "aggregate",
    "limit_rows",
    # Analytics
    "DepthBand",
    "FillLevel",
    "OrderBookStats",
    "PriceImpactResult",
    "depth_at_percentage",
    "simulate_fill",
    "stats",
]
