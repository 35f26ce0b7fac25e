"""Precision aggregation of book levels into display buckets.

Prices are rounded half-up to the configured number of decimal places and all
levels landing on the same rounded price are merged into one bucket. Running
totals are recomputed over buckets, never summed from the raw per-order
totals, so two raw levels in one bucket are not double counted.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from depthwatch.core.errors import InvalidConfiguration
from depthwatch.domain.numeric import ZERO, round_half_up
from depthwatch.domain.orderbook import Order, OrderBook

MIN_PRECISION = 0
MAX_PRECISION = 8


@dataclass(frozen=True)
class AggregatedLevel:
    """One display bucket.

    Attributes:
        price: Rounded bucket price.
        size: Sum of raw sizes in the bucket.
        total: Running size total from the best bucket.
        count: Number of raw levels merged into the bucket.
    """

    price: Decimal
    size: Decimal
    total: Decimal
    count: int


@dataclass(frozen=True)
class AggregatedBook:
    """Both sides of a book after precision aggregation."""

    bids: tuple[AggregatedLevel, ...]
    asks: tuple[AggregatedLevel, ...]
    precision: int

    @property
    def max_total(self) -> Decimal:
        """Largest cumulative total across both sides (depth bar scale)."""
        totals = [side[-1].total for side in (self.bids, self.asks) if side]
        return max(totals) if totals else ZERO


def validate_precision(precision: int) -> int:
    """Return `precision` if it is an int in [0, 8]."""
    if isinstance(precision, bool) or not isinstance(precision, int):
        raise InvalidConfiguration(f"precision must be an integer, got {precision!r}")
    if not MIN_PRECISION <= precision <= MAX_PRECISION:
        raise InvalidConfiguration(
            f"precision must be between {MIN_PRECISION} and {MAX_PRECISION}, got {precision}"
        )
    return precision


def aggregate_side(orders: Iterable[Order], precision: int) -> tuple[AggregatedLevel, ...]:
    """Bucket one side, preserving its sort direction.

    Orders arrive best-first, so equal rounded prices are always adjacent and
    the bucket order follows the side's order.
    """
    buckets: list[list] = []  # [price, size, count]
    for order in orders:
        price = round_half_up(order.price, precision)
        if buckets and buckets[-1][0] == price:
            buckets[-1][1] += order.size
            buckets[-1][2] += 1
        else:
            buckets.append([price, order.size, 1])

    result = []
    total = ZERO
    for price, size, count in buckets:
        total += size
        result.append(AggregatedLevel(price=price, size=size, total=total, count=count))
    return tuple(result)


def aggregate(book: OrderBook, precision: int) -> AggregatedBook:
    """Aggregate both sides of `book` to `precision` decimal places.

    Raises:
        InvalidConfiguration: If precision is outside [0, 8].
    """
    validate_precision(precision)
    return AggregatedBook(
        bids=aggregate_side(book.bids, precision),
        asks=aggregate_side(book.asks, precision),
        precision=precision,
    )


def limit_rows(book: AggregatedBook, row_count: int) -> AggregatedBook:
    """Keep the best `row_count` buckets on each side."""
    if isinstance(row_count, bool) or not isinstance(row_count, int) or row_count < 1:
        raise InvalidConfiguration(f"row_count must be a positive integer, got {row_count!r}")
    return AggregatedBook(
        bids=book.bids[:row_count],
        asks=book.asks[:row_count],
        precision=book.precision,
    )
