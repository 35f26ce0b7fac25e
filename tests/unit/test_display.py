"""Unit tests for terminal rendering."""

from decimal import Decimal

import pytest

from depthwatch.display import BAR_WIDTH, format_status, render
from depthwatch.domain.aggregation import aggregate, limit_rows
from depthwatch.domain.analytics import stats
from depthwatch.domain.orderbook import RawLevel, initialize
from depthwatch.integrations.polymarket.websocket import ConnectionStatus
from depthwatch.services.coordinator import BookView, DisplaySettings


def level(price: str, size: str) -> RawLevel:
    return RawLevel(Decimal(price), Decimal(size))


def make_view(bids, asks, precision=2, row_count=10, status=ConnectionStatus.CONNECTED) -> BookView:
    book = initialize("m", bids, asks)
    settings = DisplaySettings(precision=precision, row_count=row_count)
    return BookView(
        book=book,
        aggregated=limit_rows(aggregate(book, precision), row_count),
        stats=stats(book),
        settings=settings,
        status=status,
    )


@pytest.fixture
def view() -> BookView:
    return make_view(
        [level("1.23", "100"), level("1.22", "50")],
        [level("1.24", "80"), level("1.25", "40")],
    )


class TestRender:
    """Tests for render()."""

    def test_asks_above_spread_above_bids(self, view):
        lines = render(view).splitlines()
        prices = [line.split()[0] for line in lines[2:6] if not line.lstrip().startswith("spread")]
        assert prices == ["1.25", "1.24", "1.23"]
        spread_index = next(i for i, line in enumerate(lines) if "spread:" in line)
        assert lines[spread_index - 1].split()[0] == "1.24"
        assert lines[spread_index + 1].split()[0] == "1.23"

    def test_header_shows_market_and_status(self, view):
        header = render(view).splitlines()[0]
        assert header.startswith("m")
        assert "connected" in header
        assert "precision=2" in header

    def test_deepest_total_gets_full_bar(self, view):
        lines = render(view).splitlines()
        deepest = next(line for line in lines if line.split() and line.split()[0] == "1.22")
        assert deepest.endswith("#" * BAR_WIDTH)

    def test_depth_band_line(self, view):
        assert "depth 5%" in render(view).splitlines()[-1]

    def test_one_sided_book(self):
        text = render(make_view([level("0.5", "1")], []))
        assert "spread: -" in text
        assert "depth 5%" not in text

    def test_empty_book(self):
        lines = render(make_view([], [])).splitlines()
        assert lines[-1] == "  (no resting orders)"
        assert not any("spread:" in line for line in lines)

    def test_precision_formats_prices(self):
        text = render(make_view([level("0.5", "1")], [level("0.6", "1")], precision=4))
        assert "0.5000" in text
        assert "0.6000" in text


class TestFormatStatus:
    """Tests for status labels."""

    def test_known_status(self):
        assert format_status(ConnectionStatus.RECONNECTING).endswith("reconnecting")

    def test_unknown_status_uses_hollow_icon(self):
        assert format_status(ConnectionStatus.IDLE) == "○ idle"
