"""
Shared pytest fixtures for depthwatch tests.
"""
from unittest.mock import MagicMock

import pytest

from depthwatch.core.backoff import ReconnectPolicy
from depthwatch.integrations.polymarket.types import PolymarketSettings
from tests.fixtures.fake_stream import FakeScheduler, FakeStreamFactory


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def stream_factory() -> FakeStreamFactory:
    return FakeStreamFactory()


@pytest.fixture
def policy() -> ReconnectPolicy:
    """Reconnect policy without jitter so delays are exact."""
    return ReconnectPolicy(max_attempts=5, base_delay=1.0, max_delay=30.0, max_jitter=0.0)


@pytest.fixture
def polymarket_settings() -> PolymarketSettings:
    return PolymarketSettings(
        clob_url="https://clob.test",
        ws_url="wss://ws.test/ws/market",
    )


@pytest.fixture
def mock_metrics():
    """Mock MetricsEmitter for unit tests."""
    return MagicMock()
