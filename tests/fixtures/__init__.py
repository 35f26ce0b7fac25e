"""Test fixtures for depthwatch tests.

This package provides:
- FakeScheduler for driving reconnect and heartbeat timers by hand
- FakeTransport / FakeStreamFactory in place of a websocket connection
- make_raw_book() for snapshot payloads
"""

from .fake_stream import (
    OTHER_TOKEN_ID,
    TOKEN_ID,
    FakeScheduler,
    FakeStreamFactory,
    FakeTimer,
    FakeTransport,
    make_raw_book,
    settle,
)

__all__ = [
    "OTHER_TOKEN_ID",
    "TOKEN_ID",
    "FakeScheduler",
    "FakeStreamFactory",
    "FakeTimer",
    "FakeTransport",
    "make_raw_book",
    "settle",
]
