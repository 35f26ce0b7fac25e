"""Plain-text rendering of a BookView for the terminal."""

from decimal import Decimal
from typing import Optional

from depthwatch.domain.aggregation import AggregatedLevel
from depthwatch.domain.analytics import OrderBookStats
from depthwatch.integrations.polymarket.websocket import ConnectionStatus
from depthwatch.services.coordinator import BookView

BAR_WIDTH = 20
SIZE_DECIMALS = 2

STATUS_ICONS = {
    ConnectionStatus.CONNECTED: "●",
    ConnectionStatus.CONNECTING: "◐",
    ConnectionStatus.RECONNECTING: "◐",
    ConnectionStatus.ERROR: "●",
}


def format_status(status: ConnectionStatus) -> str:
    return f"{STATUS_ICONS.get(status, '○')} {status.value}"


def _fixed(value: Decimal, places: int) -> str:
    return f"{value:.{places}f}"


def _bar(total: Decimal, max_total: Decimal) -> str:
    if max_total <= 0:
        return ""
    return "#" * int(total / max_total * BAR_WIDTH)


def _row(level: AggregatedLevel, precision: int, max_total: Decimal) -> str:
    return (
        f"{_fixed(level.price, precision):>12}"
        f"{_fixed(level.size, SIZE_DECIMALS):>16}"
        f"{_fixed(level.total, SIZE_DECIMALS):>16}  "
        f"{_bar(level.total, max_total)}"
    )


def _spread_line(stats: Optional[OrderBookStats]) -> str:
    if stats is None:
        return "  spread: -"
    return (
        f"  spread: {stats.spread} ({_fixed(stats.spread_percentage, 2)}%)"
        f"  mid: {stats.mid_price}"
    )


def render(view: BookView) -> str:
    """Render asks (worst at top, best at bottom), the spread, then bids."""
    book = view.aggregated
    precision = view.settings.precision
    max_total = book.max_total

    lines = [
        f"{view.book.market_id}  {format_status(view.status)}"
        f"  precision={precision} rows={view.settings.row_count}",
        f"{'PRICE':>12}{'SIZE':>16}{'TOTAL':>16}",
    ]
    if view.book.is_empty:
        lines.append("  (no resting orders)")
        return "\n".join(lines)
    lines.extend(_row(level, precision, max_total) for level in reversed(book.asks))
    lines.append(_spread_line(view.stats))
    lines.extend(_row(level, precision, max_total) for level in book.bids)

    if view.stats is not None:
        band = view.stats.depth_at(Decimal("0.05"))
        if band is not None:
            lines.append(
                f"  depth 5%: bids {_fixed(band.bids, SIZE_DECIMALS)}"
                f" / asks {_fixed(band.asks, SIZE_DECIMALS)}"
            )
    return "\n".join(lines)
