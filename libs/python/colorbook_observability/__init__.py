"""Shared observability helpers used across the coloring page services."""

from .logging import log_context, setup_logging
from .metrics import (
    observe_page_outcome,
    observe_provider_error,
    observe_provider_response,
    observe_quality_check,
    observe_stage_duration,
    observe_sweep,
    record_worker_heartbeat,
    setup_fastapi_metrics,
    start_metrics_server,
)

__all__ = [
    "setup_logging",
    "log_context",
    "setup_fastapi_metrics",
    "start_metrics_server",
    "observe_page_outcome",
    "observe_provider_error",
    "observe_provider_response",
    "observe_quality_check",
    "observe_stage_duration",
    "observe_sweep",
    "record_worker_heartbeat",
]
