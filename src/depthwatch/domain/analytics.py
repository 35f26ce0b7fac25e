"""Spread, depth and price-impact analytics over an OrderBook.

All functions here are pure queries: they never mutate the book and can be
run against any book value, live or historical.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from depthwatch.core.errors import ValidationError
from depthwatch.domain.numeric import ONE, TWO, ZERO, percent
from depthwatch.domain.orderbook import Order, OrderBook, Side

DEPTH_BANDS = (Decimal("0.01"), Decimal("0.05"), Decimal("0.10"))


@dataclass(frozen=True)
class DepthBand:
    """Liquidity within a percentage band around the mid price."""

    percentage: Decimal
    bids: Decimal
    asks: Decimal

    @property
    def total(self) -> Decimal:
        return self.bids + self.asks


@dataclass(frozen=True)
class OrderBookStats:
    """Top-of-book and liquidity summary."""

    best_bid: Decimal
    best_ask: Decimal
    spread: Decimal
    spread_percentage: Decimal
    mid_price: Decimal
    bid_liquidity: Decimal
    ask_liquidity: Decimal
    liquidity_ratio: Decimal
    depth: tuple[DepthBand, ...]

    def depth_at(self, percentage: Decimal) -> Optional[DepthBand]:
        for band in self.depth:
            if band.percentage == percentage:
                return band
        return None


@dataclass(frozen=True)
class FillLevel:
    """One level consumed by a simulated fill.

    Attributes:
        price: Level price.
        size: Size taken from the level.
        contribution: Share of the filled size, in percent.
    """

    price: Decimal
    size: Decimal
    contribution: Decimal


@dataclass(frozen=True)
class PriceImpactResult:
    """Outcome of walking the book for a hypothetical market order."""

    side: Side
    requested_size: Decimal
    average_price: Decimal
    impact: Decimal
    filled_size: Decimal
    remaining_size: Decimal
    levels: tuple[FillLevel, ...]
    can_fill_completely: bool
    slippage: Decimal


def mid_price(book: OrderBook) -> Optional[Decimal]:
    if book.best_bid is None or book.best_ask is None:
        return None
    return (book.best_bid + book.best_ask) / TWO


def _liquidity(orders: Sequence[Order]) -> Decimal:
    return orders[-1].total if orders else ZERO


def depth_at_percentage(book: OrderBook, percentage: Decimal) -> DepthBand:
    """Size resting within `percentage` (0.01 = 1%) of the mid price.

    Bids count when price >= mid * (1 - p); asks when price <= mid * (1 + p).
    """
    mid = mid_price(book)
    if mid is None:
        return DepthBand(percentage=percentage, bids=ZERO, asks=ZERO)

    bid_threshold = mid * (ONE - percentage)
    ask_threshold = mid * (ONE + percentage)

    bids = ZERO
    for order in book.bids:
        if order.price < bid_threshold:
            break
        bids += order.size

    asks = ZERO
    for order in book.asks:
        if order.price > ask_threshold:
            break
        asks += order.size

    return DepthBand(percentage=percentage, bids=bids, asks=asks)


def stats(book: OrderBook) -> Optional[OrderBookStats]:
    """Spread, mid and liquidity summary, or None if either side is empty."""
    if not book.bids or not book.asks:
        return None

    best_bid = book.bids[0].price
    best_ask = book.asks[0].price
    spread = best_ask - best_bid
    mid = (best_bid + best_ask) / TWO
    bid_liquidity = _liquidity(book.bids)
    ask_liquidity = _liquidity(book.asks)

    return OrderBookStats(
        best_bid=best_bid,
        best_ask=best_ask,
        spread=spread,
        spread_percentage=percent(spread, mid),
        mid_price=mid,
        bid_liquidity=bid_liquidity,
        ask_liquidity=ask_liquidity,
        liquidity_ratio=bid_liquidity / ask_liquidity,
        depth=tuple(depth_at_percentage(book, p) for p in DEPTH_BANDS),
    )


def simulate_fill(book: OrderBook, side: Side, size: Decimal) -> PriceImpactResult:
    """Walk the opposing side of the book for a market order of `size`.

    Args:
        book: Book to walk.
        side: Taker side. BID (buy) lifts asks, ASK (sell) hits bids.
        size: Order size, must be positive.

    Returns:
        PriceImpactResult; when liquidity runs out, remaining_size > 0 and
        can_fill_completely is False.
    """
    if size <= 0:
        raise ValidationError(f"size must be positive, got {size}")

    opposing = book.levels(side.opposite)
    remaining = size
    cost = ZERO
    taken: list[tuple[Decimal, Decimal]] = []

    for order in opposing:
        if remaining <= 0:
            break
        fill_size = min(remaining, order.size)
        cost += fill_size * order.price
        remaining -= fill_size
        taken.append((order.price, fill_size))

    filled = size - remaining
    average = cost / filled if filled > 0 else ZERO

    best = opposing[0].price if opposing else None
    if best is not None and filled > 0:
        slippage = percent(abs(average - best), best)
    else:
        slippage = ZERO

    mid = mid_price(book)
    if mid is not None and filled > 0:
        impact = percent(abs(average - mid), mid)
    else:
        impact = slippage

    return PriceImpactResult(
        side=side,
        requested_size=size,
        average_price=average,
        impact=impact,
        filled_size=filled,
        remaining_size=remaining,
        levels=tuple(
            FillLevel(price=price, size=fill_size, contribution=percent(fill_size, filled))
            for price, fill_size in taken
        ),
        can_fill_completely=remaining == 0,
        slippage=slippage,
    )
