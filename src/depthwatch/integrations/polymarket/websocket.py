"""Polymarket market-channel stream with a reconnecting state machine.

One ConnectionManager owns one streaming transport for one market:

    idle -> connecting -> connected
    connecting -> reconnecting             (open failed)
    connected -> disconnected -> reconnecting
    reconnecting -> connecting             (backoff timer fired)
    reconnecting -> error                  (attempts exhausted)
    any -> closed                          (close() called)

Features:
- Subscription sent as soon as the transport opens
- Exponential backoff with jitter, capped attempt count
- Application-level keepalive while connected
- Timers go through a Scheduler so tests can drive them by hand
- Status callback invoked once per actual transition
"""

import asyncio
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import (
    TYPE_CHECKING,
    AsyncIterator,
    Awaitable,
    Callable,
    Optional,
    Protocol,
    Union,
)

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from depthwatch.core.backoff import AsyncioScheduler, ReconnectPolicy, Scheduler, TimerHandle
from depthwatch.core.errors import TransportError
from depthwatch.core.lifecycle import HealthCheckResult

if TYPE_CHECKING:
    from depthwatch.services.metrics import MetricsEmitter

log = structlog.get_logger()

# Connection parameters
HEARTBEAT_INTERVAL = 30.0
CLOSE_TIMEOUT = 5.0
KEEPALIVE_MESSAGE = json.dumps({"type": "ping"})
PONG_FRAMES = ("PONG", "pong")


class ConnectionStatus(str, Enum):
    """Status of a streaming connection."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    CLOSED = "closed"


class Transport(Protocol):
    """What the manager needs from an open stream."""

    async def send(self, message: str) -> None:
        ...

    async def close(self) -> None:
        ...

    def __aiter__(self) -> AsyncIterator[Union[str, bytes]]:
        ...


StreamFactory = Callable[[str], Awaitable[Transport]]
MessageCallback = Callable[[str], None]
StatusCallback = Callable[[ConnectionStatus], None]


async def open_websocket(url: str) -> Transport:
    """Default stream factory: a websockets client connection.

    Protocol-level pings are disabled; liveness is kept with the
    application keepalive instead.
    """
    return await websockets.connect(url, ping_interval=None, close_timeout=CLOSE_TIMEOUT)


@dataclass
class ConnectionMetrics:
    """Connection health metrics."""

    messages_received: int = 0
    message_errors: int = 0
    heartbeats_sent: int = 0
    pongs_received: int = 0
    reconnect_count: int = 0
    transport_errors: int = 0
    last_error: Optional[str] = None
    connect_time: float = 0.0
    last_message_time: float = 0.0

    @property
    def seconds_since_message(self) -> float:
        if self.last_message_time == 0:
            return 0.0
        return time.time() - self.last_message_time


class ConnectionManager:
    """Reconnecting stream for a single market's channel.

    Inbound text frames are handed to `on_message` in arrival order, one at a
    time. The callback is synchronous, so a frame is fully processed before
    the next is read.

    Usage:
        manager = ConnectionManager(url, token_id, on_message=handle)
        manager.connect()
        ...
        await manager.close()
    """

    def __init__(
        self,
        url: str,
        market_id: str,
        on_message: MessageCallback,
        on_status_change: Optional[StatusCallback] = None,
        policy: Optional[ReconnectPolicy] = None,
        scheduler: Optional[Scheduler] = None,
        stream_factory: Optional[StreamFactory] = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        metrics: Optional["MetricsEmitter"] = None,
    ):
        """Initialize the connection manager.

        Args:
            url: WebSocket URL of the market channel.
            market_id: Token ID to subscribe to.
            on_message: Called with each inbound text frame.
            on_status_change: Called once per status transition.
            policy: Reconnect limits and backoff parameters.
            scheduler: Timer source for reconnect and heartbeat.
            stream_factory: Opens a transport for a URL.
            heartbeat_interval: Seconds between keepalives.
            metrics: Optional MetricsEmitter for Prometheus metrics.
        """
        self._url = url
        self._market_id = market_id
        self._on_message = on_message
        self._on_status_change = on_status_change
        self._policy = policy or ReconnectPolicy()
        self._scheduler = scheduler or AsyncioScheduler()
        self._stream_factory = stream_factory or open_websocket
        self._heartbeat_interval = heartbeat_interval
        self._metrics = metrics
        self._log = log.bind(component="polymarket_ws", market_id=market_id)

        self._status = ConnectionStatus.IDLE
        self._transport: Optional[Transport] = None
        self._task: Optional[asyncio.Task] = None
        self._heartbeat_send: Optional[asyncio.Task] = None
        self._reconnect_timer: Optional[TimerHandle] = None
        self._heartbeat_timer: Optional[TimerHandle] = None
        self._attempts = 0
        self._closed_intentionally = False
        # Bumped on every open and teardown; a run loop whose generation is
        # no longer current must not touch shared state.
        self._generation = 0

        self._conn_metrics = ConnectionMetrics()

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def market_id(self) -> str:
        return self._market_id

    @property
    def reconnect_attempts(self) -> int:
        """Reconnects made since the last successful open."""
        return self._attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    @property
    def metrics(self) -> ConnectionMetrics:
        return self._conn_metrics

    # Public transitions

    def connect(self) -> None:
        """Open the stream (idle/closed -> connecting).

        Must be called from within a running event loop.
        """
        if self._status not in (ConnectionStatus.IDLE, ConnectionStatus.CLOSED):
            self._log.debug("connect_ignored", status=self._status.value)
            return
        self._closed_intentionally = False
        self._open()

    async def close(self) -> None:
        """Close the stream on purpose. No reconnect follows."""
        self._closed_intentionally = True
        await self._teardown()
        self._set_status(ConnectionStatus.CLOSED)
        self._log.info("stream_closed")

    async def reconnect(self) -> None:
        """Tear down and start over with a fresh attempt budget.

        This is the only way out of the error state.
        """
        self._closed_intentionally = True
        await self._teardown()
        self._closed_intentionally = False
        self._attempts = 0
        self._log.info("manual_reconnect")
        self._open()

    async def health_check(self) -> HealthCheckResult:
        """Check stream health."""
        if self._status == ConnectionStatus.CONNECTED:
            return HealthCheckResult.healthy(
                "Connected and receiving",
                messages_received=self._conn_metrics.messages_received,
                heartbeats_sent=self._conn_metrics.heartbeats_sent,
                reconnects=self._conn_metrics.reconnect_count,
                seconds_since_message=self._conn_metrics.seconds_since_message,
            )

        if self._status in (
            ConnectionStatus.CONNECTING,
            ConnectionStatus.RECONNECTING,
            ConnectionStatus.DISCONNECTED,
        ):
            return HealthCheckResult.degraded(
                f"Stream is {self._status.value}",
                reconnect_attempts=self._attempts,
                max_attempts=self._policy.max_attempts,
                last_error=self._conn_metrics.last_error,
            )

        return HealthCheckResult.unhealthy(
            f"Stream is {self._status.value}",
            reconnects=self._conn_metrics.reconnect_count,
            last_error=self._conn_metrics.last_error,
        )

    # State machine internals

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        previous = self._status
        self._status = status
        self._log.info("status_changed", previous=previous.value, status=status.value)

        if self._metrics:
            self._metrics.update_connection_status(status.value)

        if self._on_status_change is not None:
            try:
                self._on_status_change(status)
            except Exception as e:
                self._log.error("status_callback_failed", error=str(e))

    def _open(self) -> None:
        self._cancel_reconnect_timer()
        self._generation += 1
        self._set_status(ConnectionStatus.CONNECTING)
        self._log.info("connecting_to_websocket", url=self._url)
        self._task = asyncio.get_running_loop().create_task(self._run(self._generation))

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and not self._closed_intentionally

    async def _run(self, generation: int) -> None:
        """Open the transport, subscribe and pump frames until it ends."""
        try:
            transport = await self._stream_factory(self._url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._is_current(generation):
                return
            self._on_transport_closed(
                was_open=False,
                error=TransportError(f"could not open {self._url}", cause=e),
            )
            return

        if not self._is_current(generation):
            await self._close_transport(transport)
            return

        self._transport = transport
        error: Optional[TransportError] = None
        try:
            await self._on_open(transport)
            async for raw in transport:
                if not self._is_current(generation):
                    break
                self._handle_frame(raw)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            error = TransportError("connection closed", cause=e)
        except (WebSocketException, OSError) as e:
            error = TransportError("stream failed", cause=e)

        if self._is_current(generation):
            self._on_transport_closed(was_open=True, error=error)

    async def _on_open(self, transport: Transport) -> None:
        # Polymarket expects: {"type": "market", "assets_ids": [...]}
        await transport.send(json.dumps({"type": "market", "assets_ids": [self._market_id]}))
        self._log.debug("subscribe_sent")

        self._attempts = 0
        now = time.time()
        self._conn_metrics.connect_time = now
        self._conn_metrics.last_message_time = now
        self._set_status(ConnectionStatus.CONNECTED)
        self._schedule_heartbeat()

    def _handle_frame(self, raw: Union[str, bytes]) -> None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")

        self._conn_metrics.last_message_time = time.time()
        if raw in PONG_FRAMES:
            self._conn_metrics.pongs_received += 1
            return

        self._conn_metrics.messages_received += 1
        try:
            self._on_message(raw)
        except Exception as e:
            self._conn_metrics.message_errors += 1
            self._log.warning("message_processing_error", error=str(e))

    def _on_transport_closed(self, was_open: bool, error: Optional[TransportError] = None) -> None:
        """Record why the transport ended and decide whether to reconnect.

        `error` is None when the server closed the stream cleanly.
        """
        self._cancel_heartbeat()
        self._transport = None
        if error is not None:
            self._conn_metrics.transport_errors += 1
            self._conn_metrics.last_error = str(error)
            self._log.warning("transport_lost", error=str(error), was_open=was_open)
        elif was_open:
            self._log.info("stream_ended_by_server")
        if self._closed_intentionally:
            return
        if was_open:
            self._set_status(ConnectionStatus.DISCONNECTED)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._policy.exhausted(self._attempts):
            self._log.error(
                "max_reconnect_attempts_reached",
                attempts=self._attempts,
                max_attempts=self._policy.max_attempts,
                last_error=self._conn_metrics.last_error,
            )
            self._set_status(ConnectionStatus.ERROR)
            return

        delay = self._policy.delay(self._attempts)
        self._set_status(ConnectionStatus.RECONNECTING)
        self._log.info("reconnecting", delay=round(delay, 3), attempt=self._attempts + 1)
        self._reconnect_timer = self._scheduler.call_later(delay, self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_timer = None
        if self._closed_intentionally:
            return
        self._attempts += 1
        self._conn_metrics.reconnect_count += 1
        if self._metrics:
            self._metrics.record_websocket_reconnect()
        self._open()

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    # Heartbeat

    def _schedule_heartbeat(self) -> None:
        self._heartbeat_timer = self._scheduler.call_later(
            self._heartbeat_interval, self._heartbeat_tick
        )

    def _cancel_heartbeat(self) -> None:
        if self._heartbeat_timer is not None:
            self._heartbeat_timer.cancel()
            self._heartbeat_timer = None

    def _heartbeat_tick(self) -> None:
        self._heartbeat_timer = None
        transport = self._transport
        if transport is None or self._status != ConnectionStatus.CONNECTED:
            return
        self._heartbeat_send = asyncio.get_running_loop().create_task(
            self._send_keepalive(transport)
        )
        self._schedule_heartbeat()

    async def _send_keepalive(self, transport: Transport) -> None:
        try:
            await transport.send(KEEPALIVE_MESSAGE)
        except (WebSocketException, OSError) as e:
            # The run loop sees the same failure and handles the reconnect
            self._log.debug("heartbeat_skipped", error=str(e))
            return
        self._conn_metrics.heartbeats_sent += 1
        if self._metrics:
            self._metrics.record_heartbeat()

    # Teardown

    async def _teardown(self) -> None:
        """Cancel timers, stop the run loop, then close the transport."""
        self._generation += 1
        self._cancel_reconnect_timer()
        self._cancel_heartbeat()

        transport = self._transport
        self._transport = None

        for task in (self._task, self._heartbeat_send):
            if task is None or task.done() or task is asyncio.current_task():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._heartbeat_send = None

        if transport is not None:
            await self._close_transport(transport)

    async def _close_transport(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as e:
            self._log.debug("transport_close_failed", error=str(e))
