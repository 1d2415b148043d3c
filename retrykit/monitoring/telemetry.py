"""Logging setup and OpenTelemetry instruments for retry activity."""

from __future__ import annotations

import logging
from typing import Optional

import structlog
from opentelemetry import metrics

from ..config import RetrySettings, get_settings

_instruments: Optional["RetryInstruments"] = None


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure structlog for JSON or console output."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            [structlog.processors.CallsiteParameter.MODULE]
        ),
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(),
    )


def configure_logging_from_settings(settings: Optional[RetrySettings] = None) -> None:
    """Configure logging from ``RETRYKIT_LOG_LEVEL`` and ``RETRYKIT_LOG_FORMAT``."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)


class RetryInstruments:
    """Retry specific metric instruments.

    Only the OpenTelemetry API is used; measurements go nowhere until the
    host application installs a meter provider.
    """

    def __init__(self, meter: metrics.Meter):
        self.meter = meter

        self.attempts = meter.create_counter(
            name="retrykit_attempts_total",
            description="Operation invocations made by the retry engine",
            unit="1",
        )

        self.retries = meter.create_counter(
            name="retrykit_retries_total",
            description="Retries scheduled after a failed or rejected attempt",
            unit="1",
        )

        self.outcomes = meter.create_counter(
            name="retrykit_outcomes_total",
            description="Finished retry invocations by outcome",
            unit="1",
        )

        self.duration = meter.create_histogram(
            name="retrykit_duration_ms",
            description="Wall time of a retry invocation",
            unit="ms",
        )

    def record_attempt(self) -> None:
        self.attempts.add(1)

    def record_retry(self, reason: str) -> None:
        self.retries.add(1, {"reason": reason})

    def record_outcome(self, outcome: str, elapsed_ms: float) -> None:
        self.outcomes.add(1, {"outcome": outcome})
        self.duration.record(elapsed_ms, {"outcome": outcome})


def get_instruments() -> RetryInstruments:
    """Return the process wide instruments, creating them on first use."""
    global _instruments
    if _instruments is None:
        _instruments = RetryInstruments(metrics.get_meter("retrykit"))
    return _instruments
