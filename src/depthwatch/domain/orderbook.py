"""Canonical order book state.

The book handed to consumers is an immutable OrderBook value: every merge
(snapshot, full replace, level delta) builds a new one, so a consumer can
detect change by identity and never observes a half-applied update.

Internally each side is assembled in a SortedPriceLevels collection, which
keeps prices ordered with O(log n) insert/delete, before being frozen into a
tuple of Order entries with running totals.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from sortedcontainers import SortedDict

from depthwatch.core.errors import OutOfOrderUpdate, ValidationError
from depthwatch.domain.numeric import ZERO


class Side(str, Enum):
    """Side of the book."""

    BID = "bid"
    ASK = "ask"

    @property
    def opposite(self) -> "Side":
        return Side.ASK if self is Side.BID else Side.BID


class SequencePolicy(str, Enum):
    """How a feed's update ids are checked on merge.

    STRICT: every delta must carry exactly last_update_id + 1.
    REPLACE: the feed has no usable sequence; every message is authoritative.
    """

    STRICT = "strict"
    REPLACE = "replace"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RawLevel:
    """One price/size pair as received from the wire.

    A size of zero is a removal signal when applied as a delta.
    """

    price: Decimal
    size: Decimal


@dataclass(frozen=True)
class Order:
    """One book entry after sorting.

    Attributes:
        price: Level price.
        size: Size resting at this price.
        total: Sum of sizes from the best price down to this level.
        timestamp: When this level was last written.
    """

    price: Decimal
    size: Decimal
    total: Decimal
    timestamp: datetime


@dataclass(frozen=True)
class LevelChange:
    """A single level update on one side."""

    side: Side
    level: RawLevel


class SortedPriceLevels:
    """Sorted price -> size collection for one side of the book.

    For bids: highest price first (descending)
    For asks: lowest price first (ascending)
    """

    def __init__(self, ascending: bool = True) -> None:
        self._ascending = ascending
        # SortedDict keeps keys ascending; bids use negated prices as keys
        self._levels: SortedDict = SortedDict()

    @classmethod
    def for_side(cls, side: Side) -> "SortedPriceLevels":
        return cls(ascending=side is Side.ASK)

    @classmethod
    def from_orders(cls, side: Side, orders: Iterable[Order]) -> "SortedPriceLevels":
        levels = cls.for_side(side)
        for order in orders:
            levels.update(order.price, order.size, order.timestamp)
        return levels

    def _key(self, price: Decimal) -> Decimal:
        return price if self._ascending else -price

    def update(self, price: Decimal, size: Decimal, timestamp: Optional[datetime] = None) -> None:
        """Insert, replace or (size 0) remove the level at `price`."""
        key = self._key(price)
        if size <= 0:
            self._levels.pop(key, None)
        else:
            self._levels[key] = (price, size, timestamp or _now())

    def to_orders(self) -> tuple[Order, ...]:
        """Freeze into Order entries, best price first, with running totals."""
        orders = []
        total = ZERO
        for price, size, timestamp in self._levels.values():
            total += size
            orders.append(Order(price=price, size=size, total=total, timestamp=timestamp))
        return tuple(orders)


@dataclass(frozen=True)
class OrderBook:
    """Immutable two-sided book for one market.

    Invariants:
    - bids strictly descending by price, asks strictly ascending
    - no duplicate price on a side
    - total is the running sum of size from the best price
    """

    market_id: str
    bids: tuple[Order, ...] = ()
    asks: tuple[Order, ...] = ()
    last_update_id: int = 0
    timestamp: datetime = field(default_factory=_now)
    hash: Optional[str] = None

    def levels(self, side: Side) -> tuple[Order, ...]:
        """Orders on `side`, best price first."""
        return self.bids if side is Side.BID else self.asks

    @property
    def best_bid(self) -> Optional[Decimal]:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Optional[Decimal]:
        return self.asks[0].price if self.asks else None

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks

    def is_crossed(self) -> bool:
        """Check if the book is crossed (best bid >= best ask).

        A crossed book indicates a data error upstream.
        """
        if self.best_bid is None or self.best_ask is None:
            return False
        return self.best_bid >= self.best_ask

    def to_snapshot(self, levels: int = 10) -> dict:
        """Convert to a serializable dict (Decimals as strings)."""
        return {
            "market_id": self.market_id,
            "timestamp": self.timestamp.isoformat(),
            "last_update_id": self.last_update_id,
            "hash": self.hash,
            "best_bid": str(self.best_bid) if self.best_bid is not None else None,
            "best_ask": str(self.best_ask) if self.best_ask is not None else None,
            "bids": [
                {"price": str(o.price), "size": str(o.size), "total": str(o.total)}
                for o in self.bids[:levels]
            ],
            "asks": [
                {"price": str(o.price), "size": str(o.size), "total": str(o.total)}
                for o in self.asks[:levels]
            ],
        }


def _build_side(side: Side, raw: Iterable[RawLevel], timestamp: datetime) -> tuple[Order, ...]:
    levels = SortedPriceLevels.for_side(side)
    for level in raw:
        if level.price <= 0:
            raise ValidationError(f"price must be positive, got {level.price}")
        levels.update(level.price, level.size, timestamp)
    return levels.to_orders()


def _next_update_id(book: OrderBook, update_id: int, policy: SequencePolicy) -> int:
    if policy is SequencePolicy.STRICT:
        expected = book.last_update_id + 1
        if update_id != expected:
            raise OutOfOrderUpdate(expected=expected, received=update_id)
        return update_id
    return max(book.last_update_id, update_id)


def empty(market_id: str) -> OrderBook:
    """A book with no levels."""
    return OrderBook(market_id=market_id)


def initialize(
    market_id: str,
    raw_bids: Iterable[RawLevel],
    raw_asks: Iterable[RawLevel],
    update_id: int = 0,
    timestamp: Optional[datetime] = None,
    hash: Optional[str] = None,
) -> OrderBook:
    """Build a book from snapshot data.

    Each side is sorted, duplicate prices collapse to the last level seen,
    zero-size levels are skipped and cumulative totals are computed.

    Args:
        market_id: Market (token) the book belongs to.
        raw_bids: Bid levels in any order.
        raw_asks: Ask levels in any order.
        update_id: Sequence id of the snapshot.
        timestamp: Snapshot time (defaults to now).
        hash: Content hash reported by the feed.

    Returns:
        New OrderBook.
    """
    ts = timestamp or _now()
    return OrderBook(
        market_id=market_id,
        bids=_build_side(Side.BID, raw_bids, ts),
        asks=_build_side(Side.ASK, raw_asks, ts),
        last_update_id=update_id,
        timestamp=ts,
        hash=hash,
    )


def replace(
    book: OrderBook,
    raw_bids: Iterable[RawLevel],
    raw_asks: Iterable[RawLevel],
    update_id: int,
    timestamp: Optional[datetime] = None,
    hash: Optional[str] = None,
) -> OrderBook:
    """Merge a full-book message: both sides are replaced wholesale.

    Used for feeds without sequence numbers, so the update id only ever
    moves forward.
    """
    fresh = initialize(book.market_id, raw_bids, raw_asks, update_id, timestamp, hash)
    return OrderBook(
        market_id=fresh.market_id,
        bids=fresh.bids,
        asks=fresh.asks,
        last_update_id=max(book.last_update_id, update_id),
        timestamp=fresh.timestamp,
        hash=hash,
    )


def apply_deltas(
    book: OrderBook,
    changes: Iterable[LevelChange],
    update_id: int,
    policy: SequencePolicy = SequencePolicy.REPLACE,
    timestamp: Optional[datetime] = None,
) -> OrderBook:
    """Apply several level changes as a single merge.

    Only the sides that were touched are rebuilt; the other side's tuple is
    carried over unchanged.

    Raises:
        OutOfOrderUpdate: Under STRICT policy when update_id is not the
            successor of book.last_update_id.
    """
    next_id = _next_update_id(book, update_id, policy)
    ts = timestamp or _now()

    sides: dict[Side, SortedPriceLevels] = {}
    for change in changes:
        if change.level.price <= 0:
            raise ValidationError(f"price must be positive, got {change.level.price}")
        levels = sides.get(change.side)
        if levels is None:
            levels = SortedPriceLevels.from_orders(change.side, book.levels(change.side))
            sides[change.side] = levels
        levels.update(change.level.price, change.level.size, ts)

    bids = sides[Side.BID].to_orders() if Side.BID in sides else book.bids
    asks = sides[Side.ASK].to_orders() if Side.ASK in sides else book.asks

    return OrderBook(
        market_id=book.market_id,
        bids=bids,
        asks=asks,
        last_update_id=next_id,
        timestamp=ts,
        hash=book.hash,
    )


def apply_delta(
    book: OrderBook,
    side: Side,
    level: RawLevel,
    update_id: int,
    policy: SequencePolicy = SequencePolicy.REPLACE,
    timestamp: Optional[datetime] = None,
) -> OrderBook:
    """Insert, replace or remove one level.

    A positive size inserts or fully supersedes the level at that exact
    price; a zero size removes it (a no-op if the price is absent).
    """
    return apply_deltas(book, [LevelChange(side, level)], update_id, policy, timestamp)


def snapshot(book: OrderBook) -> OrderBook:
    """Independent copy of `book` for hand-off to consumers."""
    return OrderBook(
        market_id=book.market_id,
        bids=tuple(Order(o.price, o.size, o.total, o.timestamp) for o in book.bids),
        asks=tuple(Order(o.price, o.size, o.total, o.timestamp) for o in book.asks),
        last_update_id=book.last_update_id,
        timestamp=book.timestamp,
        hash=book.hash,
    )
