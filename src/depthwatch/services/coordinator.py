"""Order Book Coordinator - keeps one market's book in sync with the exchange.

This service:
- Fetches a full snapshot, then opens the market stream
- Merges `book` and `price_change` events into an immutable OrderBook
- Forwards stream status to subscribers (deduplicated)
- Re-snapshots when a sequenced feed reports a gap
- Serves aggregated, row-limited views and fill simulations on demand

Everything runs on one event loop. Stream frames are merged synchronously in
arrival order, so there are no locks; a generation counter discards snapshot
responses that arrive after the market they were requested for was stopped.
"""

import asyncio
import json
from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Optional

import structlog

from depthwatch.core.backoff import ReconnectPolicy, Scheduler
from depthwatch.core.errors import (
    InvalidConfiguration,
    OutOfOrderUpdate,
    SnapshotFetchError,
    ValidationError,
)
from depthwatch.core.lifecycle import HealthCheckResult
from depthwatch.core.logging import bind_market, unbind_market
from depthwatch.domain.aggregation import (
    AggregatedBook,
    MAX_PRECISION,
    MIN_PRECISION,
    aggregate,
    limit_rows,
)
from depthwatch.domain.analytics import OrderBookStats, PriceImpactResult, simulate_fill, stats
from depthwatch.domain.orderbook import (
    OrderBook,
    SequencePolicy,
    Side,
    apply_deltas,
    empty,
    initialize,
    replace,
)
from depthwatch.integrations.polymarket.clob import SnapshotClient
from depthwatch.integrations.polymarket.normalizer import (
    derive_update_id,
    get_level_decoder,
    parse_book,
    parse_price_changes,
    parse_sequence,
)
from depthwatch.integrations.polymarket.types import PolymarketSettings, RawBook
from depthwatch.integrations.polymarket.websocket import (
    HEARTBEAT_INTERVAL,
    ConnectionManager,
    ConnectionStatus,
    StreamFactory,
)

if TYPE_CHECKING:
    from depthwatch.core.config import ConfigManager
    from depthwatch.services.metrics import MetricsEmitter

log = structlog.get_logger()

# Default configuration values
DEFAULT_PRECISION = 2
DEFAULT_ROW_COUNT = 10
MAX_ROW_COUNT = 100
DEFAULT_HISTORY_SIZE = 50

BookListener = Callable[[Optional[OrderBook]], None]
StatusListener = Callable[[ConnectionStatus], None]


@dataclass(frozen=True)
class DisplaySettings:
    """How the book is presented.

    Attributes:
        precision: Decimal places prices are aggregated to (0-8).
        row_count: Buckets shown per side (1-100).
    """

    precision: int = DEFAULT_PRECISION
    row_count: int = DEFAULT_ROW_COUNT

    def __post_init__(self) -> None:
        precision, rows = self.precision, self.row_count
        if isinstance(precision, bool) or not isinstance(precision, int):
            raise InvalidConfiguration(f"precision must be an integer, got {precision!r}")
        if not MIN_PRECISION <= precision <= MAX_PRECISION:
            raise InvalidConfiguration(
                f"precision must be between {MIN_PRECISION} and {MAX_PRECISION}, got {precision}"
            )
        if isinstance(rows, bool) or not isinstance(rows, int):
            raise InvalidConfiguration(f"row_count must be an integer, got {rows!r}")
        if not 1 <= rows <= MAX_ROW_COUNT:
            raise InvalidConfiguration(
                f"row_count must be between 1 and {MAX_ROW_COUNT}, got {rows}"
            )

    @classmethod
    def from_config(cls, config: "ConfigManager") -> "DisplaySettings":
        return cls(
            precision=config.get_int("display.precision", DEFAULT_PRECISION),
            row_count=config.get_int("display.row_count", DEFAULT_ROW_COUNT),
        )


@dataclass(frozen=True)
class CoordinatorSettings:
    """Book keeping parameters.

    Attributes:
        sequence_policy: How update ids are checked on merge.
        history_size: Number of past books kept in memory.
        heartbeat_interval: Seconds between stream keepalives.
    """

    sequence_policy: SequencePolicy = SequencePolicy.REPLACE
    history_size: int = DEFAULT_HISTORY_SIZE
    heartbeat_interval: float = HEARTBEAT_INTERVAL

    @classmethod
    def from_config(cls, config: "ConfigManager") -> "CoordinatorSettings":
        raw_policy = str(config.get("book.sequence_policy", SequencePolicy.REPLACE.value))
        try:
            policy = SequencePolicy(raw_policy.lower())
        except ValueError as e:
            raise InvalidConfiguration(f"unknown sequence policy {raw_policy!r}") from e

        history_size = config.get_int("book.history_size", DEFAULT_HISTORY_SIZE)
        if history_size < 0:
            raise InvalidConfiguration(f"history_size must be non-negative, got {history_size}")

        return cls(
            sequence_policy=policy,
            history_size=history_size,
            heartbeat_interval=config.get_float("stream.heartbeat_interval", HEARTBEAT_INTERVAL),
        )


@dataclass(frozen=True)
class BookView:
    """What a display needs for one render."""

    book: OrderBook
    aggregated: AggregatedBook
    stats: Optional[OrderBookStats]
    settings: DisplaySettings
    status: ConnectionStatus


class OrderBookCoordinator:
    """Owns one market's book, its stream, and the subscribers to both.

    Usage:
        coordinator = OrderBookCoordinator(snapshot_client, settings)
        coordinator.subscribe_book(render)
        await coordinator.start(token_id)
        ...
        await coordinator.stop()
    """

    def __init__(
        self,
        snapshot_client: SnapshotClient,
        settings: PolymarketSettings,
        policy: Optional[ReconnectPolicy] = None,
        coordinator_settings: Optional[CoordinatorSettings] = None,
        display: Optional[DisplaySettings] = None,
        stream_factory: Optional[StreamFactory] = None,
        scheduler: Optional[Scheduler] = None,
        metrics: Optional["MetricsEmitter"] = None,
    ):
        """Initialize the coordinator.

        Args:
            snapshot_client: Source of full book snapshots.
            settings: Polymarket connection settings.
            policy: Reconnect policy handed to each stream.
            coordinator_settings: Sequence policy, history size, heartbeat.
            display: Initial display settings.
            stream_factory: Opens stream transports (websockets by default).
            scheduler: Timer source for stream reconnects and heartbeats.
            metrics: Optional MetricsEmitter for Prometheus metrics.
        """
        self._snapshot_client = snapshot_client
        self._settings = settings
        self._policy = policy or ReconnectPolicy()
        self._config = coordinator_settings or CoordinatorSettings()
        self._display = display or DisplaySettings()
        self._stream_factory = stream_factory
        self._scheduler = scheduler
        self._metrics = metrics
        self._decoder = get_level_decoder(settings.level_format)
        self._log = log.bind(component="orderbook_coordinator")

        self._market_id: Optional[str] = None
        self._book: Optional[OrderBook] = None
        self._history: deque[OrderBook] = deque(maxlen=self._config.history_size)
        self._status = ConnectionStatus.IDLE
        self._connection: Optional[ConnectionManager] = None
        self._resync_task: Optional[asyncio.Task] = None
        self._generation = 0

        self._book_listeners: list[BookListener] = []
        self._status_listeners: list[StatusListener] = []

    @classmethod
    def from_config(
        cls,
        config: "ConfigManager",
        snapshot_client: SnapshotClient,
        metrics: Optional["MetricsEmitter"] = None,
    ) -> "OrderBookCoordinator":
        """Build a coordinator wired from configuration."""
        return cls(
            snapshot_client=snapshot_client,
            settings=PolymarketSettings.from_config(config),
            policy=ReconnectPolicy.from_config(config),
            coordinator_settings=CoordinatorSettings.from_config(config),
            display=DisplaySettings.from_config(config),
            metrics=metrics,
        )

    # Read-only state

    @property
    def market_id(self) -> Optional[str]:
        return self._market_id

    @property
    def book(self) -> Optional[OrderBook]:
        """Latest book, or None before the first snapshot."""
        return self._book

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def display_settings(self) -> DisplaySettings:
        return self._display

    @property
    def history(self) -> tuple[OrderBook, ...]:
        """Recent books, oldest first."""
        return tuple(self._history)

    # Subscriptions

    def subscribe_book(self, listener: BookListener) -> Callable[[], None]:
        """Call `listener` with every new book. Returns an unsubscribe function."""
        self._book_listeners.append(listener)
        return lambda: self._remove_listener(self._book_listeners, listener)

    def subscribe_status(self, listener: StatusListener) -> Callable[[], None]:
        """Call `listener` on every status change. Returns an unsubscribe function."""
        self._status_listeners.append(listener)
        return lambda: self._remove_listener(self._status_listeners, listener)

    @staticmethod
    def _remove_listener(listeners: list, listener: Any) -> None:
        if listener in listeners:
            listeners.remove(listener)

    # Lifecycle

    async def start(self, market_id: str) -> None:
        """Load `market_id`'s snapshot and begin streaming its updates.

        A market already running is stopped first. If the snapshot cannot
        be fetched the status becomes error and no stream is opened.
        """
        if self._market_id is not None:
            await self.stop()

        self._generation += 1
        generation = self._generation
        self._market_id = market_id
        bind_market(market_id)
        self._log.info("starting_market")
        self._set_status(ConnectionStatus.CONNECTING)

        raw = await self._fetch(market_id, generation)
        if raw is None:
            return

        self._publish(
            initialize(
                market_id,
                raw.bids,
                raw.asks,
                update_id=self._snapshot_update_id(raw),
                timestamp=raw.timestamp,
                hash=raw.hash,
            )
        )
        self._set_status(ConnectionStatus.CONNECTED)
        self._open_stream(market_id, generation)

    async def stop(self) -> None:
        """Close the stream and drop the book."""
        market_id = self._market_id
        self._generation += 1
        self._market_id = None

        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.close()

        await self._cancel_resync()

        self._history.clear()
        if market_id is None:
            return

        self._publish(None)
        self._set_status(ConnectionStatus.CLOSED)
        self._log.info("stopped_market", market_id=market_id)
        unbind_market()

    async def reconnect(self) -> None:
        """Recover after an error.

        Restarts the stream with a fresh attempt budget when the stream is
        what failed; otherwise (snapshot failure) runs the whole start
        sequence again.
        """
        if self._market_id is None:
            raise InvalidConfiguration("no market to reconnect; call start() first")
        if self._connection is None or self._connection.status != ConnectionStatus.ERROR:
            await self.start(self._market_id)
            return
        self._log.info("reconnect_requested", market_id=self._market_id)
        await self._connection.reconnect()

    async def resync(self) -> None:
        """Replace the book with a fresh snapshot while keeping the stream."""
        if self._market_id is None:
            return
        generation = self._generation
        market_id = self._market_id

        raw = await self._fetch(market_id, generation)
        if raw is None:
            return

        self._publish(
            initialize(
                market_id,
                raw.bids,
                raw.asks,
                update_id=self._snapshot_update_id(raw),
                timestamp=raw.timestamp,
                hash=raw.hash,
            )
        )
        self._log.info("book_resynced", market_id=market_id, update_id=self._book.last_update_id)

    async def health_check(self) -> HealthCheckResult:
        """Check coordinator health."""
        if self._market_id is None:
            return HealthCheckResult.unhealthy("No market running")
        if self._status == ConnectionStatus.ERROR:
            return HealthCheckResult.unhealthy("Stream failed", market_id=self._market_id)
        if self._connection is not None and self._status == ConnectionStatus.CONNECTED:
            result = await self._connection.health_check()
            result.details["market_id"] = self._market_id
            return result
        return HealthCheckResult.degraded(
            f"Stream is {self._status.value}",
            market_id=self._market_id,
            has_book=self._book is not None,
        )

    # Display

    def set_precision(self, precision: int) -> None:
        """Change aggregation precision. Invalid values keep the old setting."""
        self._display = DisplaySettings(precision=precision, row_count=self._display.row_count)
        self._log.debug("precision_changed", precision=precision)

    def set_row_count(self, row_count: int) -> None:
        """Change visible rows per side. Invalid values keep the old setting."""
        self._display = DisplaySettings(precision=self._display.precision, row_count=row_count)
        self._log.debug("row_count_changed", row_count=row_count)

    def view(self) -> Optional[BookView]:
        """Aggregated, row-limited view of the current book."""
        book = self._book
        if book is None:
            return None
        display = self._display
        return BookView(
            book=book,
            aggregated=limit_rows(aggregate(book, display.precision), display.row_count),
            stats=stats(book),
            settings=display,
            status=self._status,
        )

    def simulate_fill(self, side: Side, size: Decimal) -> PriceImpactResult:
        """Walk the current book for a market order of `size` on `side`."""
        book = self._book if self._book is not None else empty(self._market_id or "")
        return simulate_fill(book, side, size)

    # Stream handling

    def _open_stream(self, market_id: str, generation: int) -> None:
        connection = ConnectionManager(
            url=self._settings.ws_url,
            market_id=market_id,
            on_message=self._handle_message,
            on_status_change=lambda status: self._on_stream_status(generation, status),
            policy=self._policy,
            scheduler=self._scheduler,
            stream_factory=self._stream_factory,
            heartbeat_interval=self._config.heartbeat_interval,
            metrics=self._metrics,
        )
        self._connection = connection
        connection.connect()

    def _on_stream_status(self, generation: int, status: ConnectionStatus) -> None:
        if generation != self._generation:
            return
        # The coordinator reports its own closed state from stop()
        if status == ConnectionStatus.CLOSED:
            return
        self._set_status(status)

    def _handle_message(self, raw: str) -> None:
        """Decode one stream frame and merge every event in it."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            self._drop(f"frame is not JSON: {e}")
            return

        events = data if isinstance(data, list) else [data]
        for event in events:
            try:
                self._handle_event(event)
            except ValidationError as e:
                self._drop(str(e))
            except OutOfOrderUpdate as e:
                self._log.warning("sequence_gap", expected=e.expected, received=e.received)
                self._schedule_resync("sequence_gap")

    def _handle_event(self, data: Any) -> None:
        if not isinstance(data, dict):
            raise ValidationError(f"event must be an object, got {type(data).__name__}")

        event_type = data.get("event_type") or data.get("type")
        if event_type is None:
            # Untyped frames are identified by shape
            if "price_changes" in data:
                event_type = "price_change"
            elif "bids" in data or "buys" in data:
                event_type = "book"

        if event_type == "book":
            self._apply_book(data)
        elif event_type == "price_change":
            self._apply_price_change(data)
        elif event_type in ("last_trade_price", "tick_size_change"):
            self._log.debug("event_ignored", event_type=event_type)
        elif event_type == "error":
            self._log.error("stream_error_message", data=data)
        else:
            self._log.debug("unhandled_event", event_type=event_type)
            return

        if self._metrics:
            self._metrics.record_message(str(event_type))

    def _apply_book(self, data: dict) -> None:
        raw = parse_book(data, self._decoder)
        if raw.asset_id != self._market_id or self._book is None:
            return

        if self._config.sequence_policy is SequencePolicy.STRICT:
            if raw.sequence is None:
                raise ValidationError("book has no sequence on a sequenced feed")
            if raw.sequence <= self._book.last_update_id:
                raise ValidationError(
                    f"stale book: sequence {raw.sequence} <= {self._book.last_update_id}"
                )
            # A newer full book on a sequenced feed is a new baseline
            book = initialize(
                raw.asset_id,
                raw.bids,
                raw.asks,
                update_id=raw.sequence,
                timestamp=raw.timestamp,
                hash=raw.hash,
            )
        else:
            book = replace(
                self._book,
                raw.bids,
                raw.asks,
                update_id=self._book.last_update_id + 1,
                timestamp=raw.timestamp,
                hash=raw.hash,
            )
        self._publish(book)

    def _apply_price_change(self, data: dict) -> None:
        changes = [
            pc.change for pc in parse_price_changes(data)
            if pc.asset_id == self._market_id
        ]
        if not changes or self._book is None:
            return

        if self._resync_task is not None and not self._resync_task.done():
            self._log.debug("delta_skipped_during_resync")
            return

        policy = self._config.sequence_policy
        if policy is SequencePolicy.STRICT:
            update_id = parse_sequence(data.get("sequence"))
            if update_id is None:
                raise ValidationError("price_change has no sequence on a sequenced feed")
        else:
            update_id = self._book.last_update_id + 1

        self._publish(apply_deltas(self._book, changes, update_id, policy))

    def _drop(self, reason: str) -> None:
        self._log.warning("message_dropped", reason=reason)
        if self._metrics:
            self._metrics.record_validation_error()

    # Resync

    def _schedule_resync(self, reason: str) -> None:
        if self._resync_task is not None and not self._resync_task.done():
            return
        if self._metrics:
            self._metrics.record_resync(reason)
        self._resync_task = asyncio.get_running_loop().create_task(self.resync())

    async def _cancel_resync(self) -> None:
        task, self._resync_task = self._resync_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # Internals

    async def _fetch(self, market_id: str, generation: int) -> Optional[RawBook]:
        """Fetch a snapshot; None if it failed or is no longer wanted."""
        try:
            raw = await self._snapshot_client.fetch_snapshot(market_id)
        except SnapshotFetchError as e:
            if self._metrics:
                self._metrics.record_snapshot_request("failure")
            if generation != self._generation:
                return None
            self._log.error(
                "snapshot_fetch_failed",
                market_id=market_id,
                status_code=e.status_code,
                error=str(e),
            )
            self._set_status(ConnectionStatus.ERROR)
            return None

        if self._metrics:
            self._metrics.record_snapshot_request("success")
        if generation != self._generation:
            self._log.debug("stale_snapshot_discarded", market_id=market_id)
            return None
        return raw

    def _snapshot_update_id(self, raw: RawBook) -> int:
        if raw.sequence is not None:
            return raw.sequence
        if self._config.sequence_policy is SequencePolicy.STRICT:
            # Hash-derived ids are not ordered; the first delta forces a resync
            self._log.warning("snapshot_unsequenced", market_id=raw.asset_id)
            return 0
        return derive_update_id(raw.hash)

    def _publish(self, book: Optional[OrderBook]) -> None:
        self._book = book
        if book is not None:
            if book.is_crossed():
                self._log.warning(
                    "book_crossed",
                    best_bid=str(book.best_bid),
                    best_ask=str(book.best_ask),
                    update_id=book.last_update_id,
                )
            self._history.append(book)
            if self._metrics:
                self._metrics.update_book(
                    bid_levels=len(book.bids),
                    ask_levels=len(book.asks),
                    spread=(
                        book.best_ask - book.best_bid
                        if book.best_bid is not None and book.best_ask is not None
                        else None
                    ),
                    last_update_id=book.last_update_id,
                )

        for listener in list(self._book_listeners):
            try:
                listener(book)
            except Exception as e:
                self._log.error("book_listener_failed", error=str(e))

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception as e:
                self._log.error("status_listener_failed", error=str(e))
