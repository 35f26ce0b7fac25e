"""Services - business logic with single responsibility."""

from depthwatch.services.metrics import MetricsEmitter
from depthwatch.services.coordinator import (
    BookView,
    CoordinatorSettings,
    DisplaySettings,
    OrderBookCoordinator,
)

__all__ = [
    "MetricsEmitter",
    "BookView",
    "CoordinatorSettings",
    "DisplaySettings",
    "OrderBookCoordinator",
]
