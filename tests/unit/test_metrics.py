"""Unit tests for MetricsEmitter."""
from decimal import Decimal

import pytest
from prometheus_client import CollectorRegistry

from depthwatch.services.metrics import MetricsEmitter


@pytest.fixture
def metrics_emitter():
    """Create a MetricsEmitter with isolated registry."""
    return MetricsEmitter(registry=CollectorRegistry())


def output(emitter: MetricsEmitter) -> str:
    return emitter.get_metrics().decode()


class TestMetricsEmitter:
    """Test MetricsEmitter functionality."""

    def test_init_creates_metrics(self, metrics_emitter):
        text = output(metrics_emitter)

        assert "depthwatch_info" in text
        assert "depthwatch_connection_status" in text
        assert "depthwatch_websocket_reconnects_total" in text
        assert "depthwatch_spread" in text

    def test_emitters_do_not_share_registries(self):
        first, second = MetricsEmitter(), MetricsEmitter()
        first.record_heartbeat()
        assert "depthwatch_heartbeats_total 1.0" in output(first)
        assert "depthwatch_heartbeats_total 0.0" in output(second)

    def test_connection_status(self, metrics_emitter):
        metrics_emitter.update_connection_status("connected")
        text = output(metrics_emitter)
        assert "depthwatch_connection_status 2.0" in text
        assert "depthwatch_websocket_connected 1.0" in text

        metrics_emitter.update_connection_status("reconnecting")
        text = output(metrics_emitter)
        assert "depthwatch_connection_status 3.0" in text
        assert "depthwatch_websocket_connected 0.0" in text

    def test_record_message(self, metrics_emitter):
        metrics_emitter.record_message("price_change")
        metrics_emitter.record_message("price_change")
        assert 'depthwatch_messages_total{kind="price_change"} 2.0' in output(metrics_emitter)

    def test_record_resync(self, metrics_emitter):
        metrics_emitter.record_resync("sequence_gap")
        assert 'depthwatch_resyncs_total{reason="sequence_gap"} 1.0' in output(metrics_emitter)

    def test_record_snapshot_request(self, metrics_emitter):
        metrics_emitter.record_snapshot_request("failure")
        assert 'depthwatch_snapshot_requests_total{status="failure"} 1.0' in output(metrics_emitter)

    def test_validation_errors(self, metrics_emitter):
        metrics_emitter.record_validation_error()
        assert "depthwatch_validation_errors_total 1.0" in output(metrics_emitter)

    def test_update_book(self, metrics_emitter):
        metrics_emitter.update_book(bid_levels=12, ask_levels=9, spread=Decimal("0.01"), last_update_id=42)
        text = output(metrics_emitter)
        assert 'depthwatch_book_levels{side="bid"} 12.0' in text
        assert 'depthwatch_book_levels{side="ask"} 9.0' in text
        assert "depthwatch_spread 0.01" in text
        assert "depthwatch_last_update_id 42.0" in text

    def test_update_book_without_spread(self, metrics_emitter):
        metrics_emitter.update_book(bid_levels=1, ask_levels=0, spread=None, last_update_id=1)
        assert "depthwatch_spread 0.0" in output(metrics_emitter)
