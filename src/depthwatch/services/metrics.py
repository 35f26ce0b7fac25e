"""
Prometheus metrics emission for depthwatch.

Provides observability through standardized metrics collection.
All metrics use the 'depthwatch_' prefix.
"""
from decimal import Decimal
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Info,
    generate_latest,
)

# Numeric codes for the connection status gauge
STATUS_CODES = {
    "idle": 0,
    "connecting": 1,
    "connected": 2,
    "reconnecting": 3,
    "disconnected": 4,
    "error": 5,
    "closed": 6,
}


class MetricsEmitter:
    """Prometheus metrics emission (emit only, no reading).

    Usage:
        emitter = MetricsEmitter()
        emitter.record_message("book")
        emitter.update_book(bid_levels=12, ask_levels=9, spread=None, last_update_id=1)
        metrics_output = emitter.get_metrics()
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        """Initialize MetricsEmitter.

        Args:
            registry: Optional custom registry (a private one if not provided)
        """
        self._registry = registry or CollectorRegistry()

        self._info = Info(
            "depthwatch",
            "depthwatch order book service information",
            registry=self._registry,
        )
        self._info.info({
            "version": "0.1.0",
            "component": "depthwatch",
        })

        # Connection metrics
        self._connection_status = Gauge(
            "depthwatch_connection_status",
            "Stream status (0=idle 1=connecting 2=connected 3=reconnecting "
            "4=disconnected 5=error 6=closed)",
            registry=self._registry,
        )

        self._websocket_connected = Gauge(
            "depthwatch_websocket_connected",
            "WebSocket connection status (1=connected, 0=disconnected)",
            registry=self._registry,
        )

        self._websocket_reconnects = Counter(
            "depthwatch_websocket_reconnects_total",
            "WebSocket reconnection count",
            registry=self._registry,
        )

        self._heartbeats = Counter(
            "depthwatch_heartbeats_total",
            "Keepalive messages sent",
            registry=self._registry,
        )

        # Feed metrics
        self._messages_total = Counter(
            "depthwatch_messages_total",
            "Stream messages processed",
            ["kind"],
            registry=self._registry,
        )

        self._validation_errors = Counter(
            "depthwatch_validation_errors_total",
            "Stream messages dropped as malformed",
            registry=self._registry,
        )

        self._resyncs = Counter(
            "depthwatch_resyncs_total",
            "Full re-snapshots triggered",
            ["reason"],
            registry=self._registry,
        )

        self._snapshot_requests = Counter(
            "depthwatch_snapshot_requests_total",
            "Snapshot requests made",
            ["status"],
            registry=self._registry,
        )

        # Book gauges
        self._book_levels = Gauge(
            "depthwatch_book_levels",
            "Number of price levels on each side of the book",
            ["side"],
            registry=self._registry,
        )

        self._spread = Gauge(
            "depthwatch_spread",
            "Best ask minus best bid",
            registry=self._registry,
        )

        self._last_update_id = Gauge(
            "depthwatch_last_update_id",
            "Update id of the current book",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        """The registry metrics are recorded to."""
        return self._registry

    # Connection

    def update_connection_status(self, status: str) -> None:
        """Record the stream's current status."""
        self._connection_status.set(STATUS_CODES.get(str(status), -1))
        self._websocket_connected.set(1 if status == "connected" else 0)

    def record_websocket_reconnect(self) -> None:
        """Record a reconnect attempt."""
        self._websocket_reconnects.inc()

    def record_heartbeat(self) -> None:
        """Record a keepalive sent."""
        self._heartbeats.inc()

    # Feed

    def record_message(self, kind: str) -> None:
        """Record a processed stream message.

        Args:
            kind: Event type (book, price_change, ...)
        """
        self._messages_total.labels(kind=kind).inc()

    def record_validation_error(self) -> None:
        """Record a dropped malformed message."""
        self._validation_errors.inc()

    def record_resync(self, reason: str) -> None:
        """Record a full re-snapshot."""
        self._resyncs.labels(reason=reason).inc()

    def record_snapshot_request(self, status: str) -> None:
        """Record a snapshot request outcome (success/failure)."""
        self._snapshot_requests.labels(status=status).inc()

    # Book

    def update_book(
        self,
        bid_levels: int,
        ask_levels: int,
        spread: Optional[Decimal],
        last_update_id: int,
    ) -> None:
        """Record the shape of the current book."""
        self._book_levels.labels(side="bid").set(bid_levels)
        self._book_levels.labels(side="ask").set(ask_levels)
        self._spread.set(float(spread) if spread is not None else 0.0)
        self._last_update_id.set(last_update_id)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus exposition format.

        Returns:
            Prometheus metrics as bytes
        """
        return generate_latest(self._registry)
