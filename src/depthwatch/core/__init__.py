"""Core infrastructure - config, logging, errors, backoff, health."""

from depthwatch.core.backoff import AsyncioScheduler, ReconnectPolicy, Scheduler, backoff_delay
from depthwatch.core.config import ConfigManager
from depthwatch.core.errors import (
    DepthwatchError,
    ErrorCategory,
    InvalidConfiguration,
    OutOfOrderUpdate,
    PermanentError,
    SnapshotFetchError,
    TransientError,
    TransportError,
    ValidationError,
    is_retryable,
)
from depthwatch.core.lifecycle import HealthCheckResult, HealthStatus
from depthwatch.core.logging import bind_market, setup_logging, unbind_market

__all__ = [
    # Config
    "ConfigManager",
    # Logging
    "setup_logging",
    "bind_market",
    "unbind_market",
    # Health
    "HealthCheckResult",
    "HealthStatus",
    # Backoff
    "AsyncioScheduler",
    "ReconnectPolicy",
    "Scheduler",
    "backoff_delay",
    # Errors
    "DepthwatchError",
    "ErrorCategory",
    "TransientError",
    "TransportError",
    "SnapshotFetchError",
    "OutOfOrderUpdate",
    "PermanentError",
    "ValidationError",
    "InvalidConfiguration",
    "is_retryable",
]
