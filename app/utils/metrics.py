"""
Metrics collection and emission for observability.

This module provides metrics tracking for:
- Tick duration and number of PRs evaluated
- Conflict onsets and automated actions per tick
- Notification deliveries and failures per sink
- Outbound call latency
"""

import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from contextlib import asynccontextmanager

from app.utils.logging import get_logger, log_api_call

logger = get_logger(__name__)


class TickMetrics:
    """
    Collects metrics during one engine tick.

    Tracks:
    - Tick start/end time
    - PRs evaluated and skipped
    - Conflict onsets
    - Automated actions by type
    - Notifications scheduled
    """

    def __init__(self, tick_id: str):
        """
        Initialize metrics collector.

        Args:
            tick_id: Identifier of the tick being measured
        """
        self.tick_id = tick_id

        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None
        self.duration_ms: Optional[int] = None

        self.prs_evaluated: int = 0
        self.prs_skipped: int = 0
        self.conflict_onsets: int = 0
        self.actions: Dict[str, int] = {}
        self.notifications_scheduled: int = 0

        self.status: str = "running"
        self.error_message: Optional[str] = None

    def start(self) -> None:
        """Mark tick start."""
        self.start_time = datetime.now(timezone.utc)
        self.status = "running"
        logger.debug("Tick metrics collection started", extra={"tick_id": self.tick_id})

    def complete(self, status: str = "completed", error_message: Optional[str] = None) -> None:
        """
        Mark tick completion.

        Args:
            status: Final status ('completed', 'failed')
            error_message: Error message if failed
        """
        self.end_time = datetime.now(timezone.utc)
        self.status = status
        self.error_message = error_message

        if self.start_time:
            duration = (self.end_time - self.start_time).total_seconds()
            self.duration_ms = int(duration * 1000)

        logger.info(
            f"Tick {self.tick_id} {status}",
            extra={
                "tick_id": self.tick_id,
                "status": self.status,
                "duration_ms": self.duration_ms,
                "prs_evaluated": self.prs_evaluated,
                "prs_skipped": self.prs_skipped,
                "conflict_onsets": self.conflict_onsets,
                "actions": dict(self.actions),
                "notifications_scheduled": self.notifications_scheduled,
            }
        )

    def record_evaluated(self) -> None:
        self.prs_evaluated += 1

    def record_skipped(self) -> None:
        self.prs_skipped += 1

    def record_conflict_onset(self) -> None:
        self.conflict_onsets += 1

    def record_action(self, action: str) -> None:
        self.actions[action] = self.actions.get(action, 0) + 1

    def record_notification(self) -> None:
        self.notifications_scheduled += 1

    def get_metrics_summary(self) -> Dict[str, Any]:
        """
        Get summary of collected metrics.

        Returns:
            Dictionary of metrics
        """
        summary = {
            "tick_id": self.tick_id,
            "status": self.status,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "prs_evaluated": self.prs_evaluated,
            "prs_skipped": self.prs_skipped,
            "conflict_onsets": self.conflict_onsets,
            "actions": dict(self.actions),
            "notifications_scheduled": self.notifications_scheduled,
        }

        if self.error_message:
            summary["error_message"] = self.error_message

        return summary


@asynccontextmanager
async def track_api_call(service: str, endpoint: str, method: str, logger_adapter):
    """
    Context manager to time and log an outbound call.

    Usage:
        async with track_api_call("teams_webhook", url, "POST", logger):
            await client.post(url, json=card)
    """
    start_time = time.perf_counter()
    error = None

    try:
        yield
    except Exception as e:
        error = e
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        log_api_call(
            logger_adapter,
            service=service,
            endpoint=endpoint,
            method=method,
            duration_ms=duration_ms,
            error=str(error) if error else None
        )
        emit_metric(f"{service}.latency_ms", duration_ms, failed=error is not None)


def emit_metric(metric_name: str, value: float, **tags: Any) -> None:
    """
    Emit a metric as a structured log entry.

    Args:
        metric_name: Metric name
        value: Metric value
        **tags: Metric tags/labels
    """
    logger.debug(
        f"Metric: {metric_name}",
        extra={
            "metric_name": metric_name,
            "metric_value": value,
            "metric_tags": tags,
        }
    )
