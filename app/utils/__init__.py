"""
Utility modules for the PR automation engine.
"""

from app.utils.logging import (
    get_logger,
    setup_logging,
    log_transition,
    log_api_call,
    log_error_with_context,
)
from app.utils.metrics import (
    TickMetrics,
    track_api_call,
    emit_metric,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "log_transition",
    "log_api_call",
    "log_error_with_context",
    "TickMetrics",
    "track_api_call",
    "emit_metric",
]
