"""Monitoring utilities for retry activity."""

from .metrics import RetryMetricsRecorder, RetryRunMetrics, summarize_recent_runs
from .telemetry import (
    RetryInstruments,
    configure_logging,
    configure_logging_from_settings,
    get_instruments,
)

__all__ = [
    "RetryMetricsRecorder",
    "RetryRunMetrics",
    "summarize_recent_runs",
    "RetryInstruments",
    "configure_logging",
    "configure_logging_from_settings",
    "get_instruments",
]
