"""Hand-driven fakes for streaming tests.

FakeScheduler replaces wall-clock timers; FakeTransport and
FakeStreamFactory replace the network.
"""
import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

from depthwatch.domain.orderbook import RawLevel
from depthwatch.integrations.polymarket.types import RawBook

TOKEN_ID = "71321045679252212594626385532706912750332728571942532289631379312455583992563"
OTHER_TOKEN_ID = "52114319501245915516055106046884209969926127482827954674443846427813813222426"

_CLOSE = object()


class FakeTimer:
    """A scheduled callback that only fires when a test says so."""

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Scheduler whose timers are fired manually."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def fire(self, timer: FakeTimer) -> None:
        self.timers.remove(timer)
        timer.callback()

    def fire_next(self) -> FakeTimer:
        """Fire the earliest scheduled pending timer."""
        timer = self.pending[0]
        self.fire(timer)
        return timer


class FakeTransport:
    """In-memory stand-in for a websocket connection."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionError("transport closed")
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(_CLOSE)

    def feed(self, message: Any) -> None:
        """Queue an inbound frame (or an exception to raise)."""
        self._inbox.put_nowait(message)

    def drop(self) -> None:
        """Simulate the server closing the connection."""
        self._inbox.put_nowait(_CLOSE)

    def __aiter__(self) -> "FakeTransport":
        return self

    async def __anext__(self) -> Any:
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeStreamFactory:
    """Stream factory that hands out FakeTransports or fails on request."""

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.transports: list[FakeTransport] = []
        self.failures = 0

    async def __call__(self, url: str) -> FakeTransport:
        self.urls.append(url)
        if self.failures > 0:
            self.failures -= 1
            raise OSError("connection refused")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> Optional[FakeTransport]:
        return self.transports[-1] if self.transports else None


async def settle(rounds: int = 10) -> None:
    """Let pending tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_raw_book(
    asset_id: str = TOKEN_ID,
    bids: Optional[list[tuple[str, str]]] = None,
    asks: Optional[list[tuple[str, str]]] = None,
    hash: Optional[str] = "0x0000000a5f3c",
    sequence: Optional[int] = None,
) -> RawBook:
    """RawBook with the standard test levels unless overridden."""
    if bids is None:
        bids = [("1.23", "100"), ("1.22", "50")]
    if asks is None:
        asks = [("1.24", "80"), ("1.25", "40")]
    return RawBook(
        asset_id=asset_id,
        market="0xmarket",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        hash=hash,
        bids=tuple(RawLevel(Decimal(p), Decimal(s)) for p, s in bids),
        asks=tuple(RawLevel(Decimal(p), Decimal(s)) for p, s in asks),
        sequence=sequence,
    )
