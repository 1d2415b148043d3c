from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Dict, List

import structlog


@dataclass
class RetryRunMetrics:
    outcome: str
    attempts: int
    retries_scheduled: int
    elapsed_ms: float
    error_type: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RetryMetricsRecorder:
    """Record and summarize retry invocations."""

    def __init__(self) -> None:
        self.runs: List[RetryRunMetrics] = []
        self.logger = structlog.get_logger(__name__)

    def record_run(
        self,
        outcome: str,
        attempts: int,
        retries_scheduled: int,
        elapsed_ms: float,
        error_type: str | None = None,
    ) -> None:
        run = RetryRunMetrics(
            outcome=outcome,
            attempts=attempts,
            retries_scheduled=retries_scheduled,
            elapsed_ms=elapsed_ms,
            error_type=error_type,
        )
        self.runs.append(run)
        self.logger.info("retry_run_metrics", **asdict(run))

    def summary(self, last_n: int = 5) -> Dict[str, float | str | int]:
        recent = self.runs[-last_n:]
        if not recent:
            return {}
        avg_elapsed = sum(r.elapsed_ms for r in recent) / len(recent)
        avg_attempts = sum(r.attempts for r in recent) / len(recent)
        outcomes: Dict[str, int] = {}
        for r in recent:
            outcomes[r.outcome] = outcomes.get(r.outcome, 0) + 1
        most_common = max(outcomes, key=outcomes.get)
        return {
            "runs": len(recent),
            "avg_elapsed_ms": avg_elapsed,
            "avg_attempts": avg_attempts,
            "success_rate": outcomes.get("succeeded", 0) / len(recent),
            "most_common_outcome": most_common,
        }


def summarize_recent_runs(recorder: RetryMetricsRecorder, last_n: int = 5) -> str:
    data = recorder.summary(last_n)
    if not data:
        return "No runs recorded."
    return (
        f"Last {data['runs']} runs - Avg time: {data['avg_elapsed_ms']:.0f}ms, "
        f"Avg attempts: {data['avg_attempts']:.2f}, Success rate: {data['success_rate']:.0%}, "
        f"Most common outcome: {data['most_common_outcome']}"
    )
