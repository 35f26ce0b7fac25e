"""Unit tests for the immutable OrderBook and its merge operations.

Tests cover:
- Snapshot initialization (sorting, totals, duplicates, zero sizes)
- Level deltas (insert, replace, remove)
- Full-book replacement
- STRICT and REPLACE sequence policies
- SortedPriceLevels ordering
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from depthwatch.core.errors import OutOfOrderUpdate, ValidationError
from depthwatch.domain.orderbook import (
    LevelChange,
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

MARKET = "token-1"


def level(price: str, size: str) -> RawLevel:
    return RawLevel(Decimal(price), Decimal(size))


def triples(orders) -> list[tuple[Decimal, Decimal, Decimal]]:
    return [(o.price, o.size, o.total) for o in orders]


@pytest.fixture
def book() -> OrderBook:
    """Bids 1.23x100, 1.22x50; asks 1.24x80, 1.25x40."""
    return initialize(
        MARKET,
        [level("1.22", "50"), level("1.23", "100")],
        [level("1.25", "40"), level("1.24", "80")],
        update_id=1,
    )


class TestInitialize:
    """Tests for building a book from snapshot data."""

    def test_sorts_and_accumulates(self, book):
        assert triples(book.bids) == [
            (Decimal("1.23"), Decimal("100"), Decimal("100")),
            (Decimal("1.22"), Decimal("50"), Decimal("150")),
        ]
        assert triples(book.asks) == [
            (Decimal("1.24"), Decimal("80"), Decimal("80")),
            (Decimal("1.25"), Decimal("40"), Decimal("120")),
        ]

    def test_best_prices(self, book):
        assert book.best_bid == Decimal("1.23")
        assert book.best_ask == Decimal("1.24")
        assert not book.is_crossed()

    def test_zero_size_levels_skipped(self):
        result = initialize(MARKET, [level("0.5", "0"), level("0.4", "10")], [])
        assert [o.price for o in result.bids] == [Decimal("0.4")]

    def test_duplicate_price_keeps_last(self):
        result = initialize(MARKET, [level("0.5", "10"), level("0.5", "30")], [])
        assert triples(result.bids) == [(Decimal("0.5"), Decimal("30"), Decimal("30"))]

    def test_non_positive_price_rejected(self):
        with pytest.raises(ValidationError):
            initialize(MARKET, [level("0", "10")], [])

    def test_carries_metadata(self):
        ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
        result = initialize(MARKET, [], [], update_id=7, timestamp=ts, hash="0xabc")
        assert result.last_update_id == 7
        assert result.timestamp == ts
        assert result.hash == "0xabc"
        assert result.is_empty

    def test_empty_book(self):
        result = empty(MARKET)
        assert result.market_id == MARKET
        assert result.bids == () and result.asks == ()
        assert result.best_bid is None and result.best_ask is None


class TestApplyDelta:
    """Tests for single-level updates."""

    def test_zero_size_removes_level(self, book):
        result = apply_delta(book, Side.BID, level("1.23", "0"), update_id=2)
        assert triples(result.bids) == [(Decimal("1.22"), Decimal("50"), Decimal("50"))]

    def test_untouched_side_is_shared(self, book):
        result = apply_delta(book, Side.BID, level("1.23", "0"), update_id=2)
        assert result.asks is book.asks

    def test_input_book_unchanged(self, book):
        bids_before = book.bids
        apply_delta(book, Side.BID, level("1.23", "0"), update_id=2)
        assert book.bids is bids_before
        assert len(book.bids) == 2

    def test_new_book_each_merge(self, book):
        result = apply_delta(book, Side.ASK, level("1.26", "5"), update_id=2)
        assert result is not book

    def test_insert_new_level(self, book):
        result = apply_delta(book, Side.BID, level("1.225", "10"), update_id=2)
        assert [o.price for o in result.bids] == [
            Decimal("1.23"),
            Decimal("1.225"),
            Decimal("1.22"),
        ]
        assert result.bids[-1].total == Decimal("160")

    def test_size_replaces_not_adds(self, book):
        result = apply_delta(book, Side.ASK, level("1.24", "5"), update_id=2)
        assert result.asks[0].size == Decimal("5")
        assert result.asks[1].total == Decimal("45")

    def test_removing_absent_price_is_noop(self, book):
        result = apply_delta(book, Side.ASK, level("9.99", "0"), update_id=2)
        assert triples(result.asks) == triples(book.asks)

    def test_non_positive_price_rejected(self, book):
        with pytest.raises(ValidationError):
            apply_delta(book, Side.BID, level("-1", "10"), update_id=2)


class TestApplyDeltas:
    """Tests for batched updates."""

    def test_both_sides_in_one_merge(self, book):
        result = apply_deltas(
            book,
            [
                LevelChange(Side.BID, level("1.23", "0")),
                LevelChange(Side.ASK, level("1.24", "0")),
            ],
            update_id=2,
        )
        assert result.best_bid == Decimal("1.22")
        assert result.best_ask == Decimal("1.25")

    def test_later_change_to_same_price_wins(self, book):
        result = apply_deltas(
            book,
            [
                LevelChange(Side.ASK, level("1.24", "1")),
                LevelChange(Side.ASK, level("1.24", "2")),
            ],
            update_id=2,
        )
        assert result.asks[0].size == Decimal("2")


class TestSequencePolicy:
    """Tests for update id checks."""

    def test_strict_accepts_successor(self, book):
        result = apply_delta(
            book, Side.BID, level("1.2", "1"), update_id=2, policy=SequencePolicy.STRICT
        )
        assert result.last_update_id == 2

    def test_strict_rejects_gap(self, book):
        with pytest.raises(OutOfOrderUpdate) as exc_info:
            apply_delta(
                book, Side.BID, level("1.2", "1"), update_id=4, policy=SequencePolicy.STRICT
            )
        assert exc_info.value.expected == 2
        assert exc_info.value.received == 4

    def test_strict_rejects_replay(self, book):
        with pytest.raises(OutOfOrderUpdate):
            apply_delta(
                book, Side.BID, level("1.2", "1"), update_id=1, policy=SequencePolicy.STRICT
            )

    def test_replace_never_moves_id_backwards(self, book):
        result = apply_delta(
            book, Side.BID, level("1.2", "1"), update_id=0, policy=SequencePolicy.REPLACE
        )
        assert result.last_update_id == 1
        assert result.bids[-1].price == Decimal("1.2")


class TestReplace:
    """Tests for full-book replacement."""

    def test_sides_replaced_wholesale(self, book):
        result = replace(book, [level("0.5", "1")], [level("0.6", "2")], update_id=5, hash="0xnew")
        assert triples(result.bids) == [(Decimal("0.5"), Decimal("1"), Decimal("1"))]
        assert triples(result.asks) == [(Decimal("0.6"), Decimal("2"), Decimal("2"))]
        assert result.last_update_id == 5
        assert result.hash == "0xnew"

    def test_update_id_monotonic(self, book):
        result = replace(book, [], [], update_id=0)
        assert result.last_update_id == 1


class TestSnapshot:
    """Tests for snapshot() and to_snapshot()."""

    def test_snapshot_is_equal_but_independent(self, book):
        copy = snapshot(book)
        assert copy == book
        assert copy.bids is not book.bids

    def test_to_snapshot_serializes_decimals(self, book):
        data = book.to_snapshot(levels=1)
        assert data["best_bid"] == "1.23"
        assert data["bids"] == [{"price": "1.23", "size": "100", "total": "100"}]
        assert len(data["asks"]) == 1


class TestSortedPriceLevels:
    """Tests for the per-side sorted collection."""

    def test_bids_descending(self):
        levels = SortedPriceLevels.for_side(Side.BID)
        for price in ("0.3", "0.5", "0.4"):
            levels.update(Decimal(price), Decimal("1"))
        assert [o.price for o in levels.to_orders()] == [Decimal("0.5"), Decimal("0.4"), Decimal("0.3")]

    def test_asks_ascending(self):
        levels = SortedPriceLevels.for_side(Side.ASK)
        for price in ("0.3", "0.5", "0.4"):
            levels.update(Decimal(price), Decimal("1"))
        assert [o.price for o in levels.to_orders()] == [Decimal("0.3"), Decimal("0.4"), Decimal("0.5")]

    def test_zero_size_update_removes(self):
        levels = SortedPriceLevels.for_side(Side.ASK)
        levels.update(Decimal("0.5"), Decimal("10"))
        levels.update(Decimal("0.5"), Decimal("0"))
        levels.update(Decimal("0.6"), Decimal("0"))
        assert levels.to_orders() == ()

    def test_crossed_book_detected(self):
        result = initialize(MARKET, [level("0.6", "1")], [level("0.5", "1")])
        assert result.is_crossed()
