"""Prometheus metrics helpers and middleware."""

from __future__ import annotations

from time import perf_counter
from typing import TYPE_CHECKING, Optional, Tuple

from fastapi import FastAPI, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

if TYPE_CHECKING:  # pragma: no cover - imported for type checking only
    from colorbook_providers.base import ImageResponse


_HTTP_REQUEST_COUNT = Counter(
    "colorbook_http_requests_total",
    "Total HTTP requests processed by service",
    labelnames=("service", "method", "route", "status"),
)

_HTTP_REQUEST_LATENCY = Histogram(
    "colorbook_http_request_duration_seconds",
    "Latency of HTTP requests",
    labelnames=("service", "method", "route"),
)

_STAGE_DURATION = Histogram(
    "colorbook_stage_duration_seconds",
    "Duration of pipeline stages (batch, window, page, persist, sweep)",
    labelnames=("service", "stage"),
)

_STAGE_COUNTER = Counter(
    "colorbook_stage_runs_total",
    "Count of stage executions by outcome",
    labelnames=("service", "stage", "status"),
)

_IMAGE_LATENCY = Histogram(
    "colorbook_image_provider_latency_seconds",
    "Latency of image provider calls",
    labelnames=("service", "provider"),
    buckets=(1, 2.5, 5, 10, 20, 30, 45, 60, 90, 120, 180),
)

_IMAGE_COST = Counter(
    "colorbook_image_cost_usd_total",
    "Aggregated image generation cost in USD",
    labelnames=("service", "provider"),
)

_PROVIDER_ERRORS = Counter(
    "colorbook_image_provider_errors_total",
    "Classified image provider failures",
    labelnames=("service", "provider", "kind"),
)

_QUALITY_CHECKS = Counter(
    "colorbook_quality_checks_total",
    "Quality gate check results",
    labelnames=("service", "check", "result"),
)

_PAGE_OUTCOMES = Counter(
    "colorbook_page_outcomes_total",
    "Terminal page outcomes by status and final state",
    labelnames=("service", "status", "final_state"),
)

_PAGE_ATTEMPTS = Histogram(
    "colorbook_page_attempts",
    "Number of generation attempts used per page",
    labelnames=("service",),
    buckets=(1, 2, 3, 4, 5),
)

_SWEEP_ASSETS = Counter(
    "colorbook_asset_sweep_total",
    "Assets handled by the expiry sweep",
    labelnames=("service", "result"),
)

_WORKER_HEARTBEAT = Gauge(
    "colorbook_worker_heartbeat_timestamp",
    "Unix timestamp for the latest worker heartbeat",
    labelnames=("service",),
)

_STARTUP_FLAGS: set[Tuple[str, int]] = set()


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect request metrics for FastAPI services."""

    def __init__(self, app: FastAPI, service_name: str) -> None:
        super().__init__(app)
        self.service_name = service_name

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        start = perf_counter()
        response = await call_next(request)
        elapsed = perf_counter() - start

        route_template = request.url.path
        route = request.scope.get("route")
        if route and getattr(route, "path", None):
            route_template = route.path  # type: ignore[assignment]

        method = request.method
        status = getattr(response, "status_code", 500)

        _HTTP_REQUEST_COUNT.labels(self.service_name, method, route_template, str(status)).inc()
        _HTTP_REQUEST_LATENCY.labels(self.service_name, method, route_template).observe(elapsed)
        return response


def setup_fastapi_metrics(app: FastAPI, service_name: str, endpoint: str = "/metrics") -> None:
    """Register Prometheus middleware and metrics endpoint for a FastAPI app."""

    if getattr(app.state, "metrics_configured", False):
        return

    app.add_middleware(PrometheusMiddleware, service_name=service_name)

    @app.get(endpoint, include_in_schema=False)
    async def _metrics_endpoint() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.state.metrics_configured = True


def start_metrics_server(port: int, addr: str = "0.0.0.0") -> None:
    """Expose Prometheus metrics on a standalone HTTP server."""

    key = (addr, port)
    if key in _STARTUP_FLAGS:
        return
    start_http_server(port, addr=addr)
    _STARTUP_FLAGS.add(key)


def observe_stage_duration(
    stage: str,
    duration_seconds: float,
    *,
    service_name: str,
    status: str = "success",
) -> None:
    """Record metrics for stage execution duration and outcome."""

    _STAGE_DURATION.labels(service_name, stage).observe(max(duration_seconds, 0.0))
    _STAGE_COUNTER.labels(service_name, stage, status).inc()


def observe_provider_response(
    *,
    provider: str,
    service_name: str,
    response: Optional["ImageResponse"],
) -> None:
    """Capture latency and cost from an image provider response."""

    if response is None:
        return

    latency_ms = getattr(response, "latency_ms", None)
    if isinstance(latency_ms, (int, float)) and latency_ms >= 0:
        _IMAGE_LATENCY.labels(service_name, provider).observe(latency_ms / 1000)

    cost_usd = getattr(response, "cost_usd", None)
    if isinstance(cost_usd, (int, float)) and cost_usd >= 0:
        _IMAGE_COST.labels(service_name, provider).inc(cost_usd)


def observe_provider_error(*, provider: str, service_name: str, kind: str) -> None:
    _PROVIDER_ERRORS.labels(service_name, provider, kind).inc()


def observe_quality_check(check: str, passed: bool | None, *, service_name: str) -> None:
    """Count one quality gate check; ``None`` means the check was not run or unverified."""

    result = "skipped" if passed is None else ("pass" if passed else "fail")
    _QUALITY_CHECKS.labels(service_name, check, result).inc()


def observe_page_outcome(
    *,
    status: str,
    final_state: str,
    attempts: int,
    service_name: str,
) -> None:
    _PAGE_OUTCOMES.labels(service_name, status, final_state).inc()
    if attempts > 0:
        _PAGE_ATTEMPTS.labels(service_name).observe(attempts)


def observe_sweep(*, deleted: int, errors: int, service_name: str) -> None:
    if deleted:
        _SWEEP_ASSETS.labels(service_name, "deleted").inc(deleted)
    if errors:
        _SWEEP_ASSETS.labels(service_name, "error").inc(errors)


def record_worker_heartbeat(service_name: str) -> None:
    """Update the heartbeat gauge for long-running worker processes."""

    _WORKER_HEARTBEAT.labels(service_name).set_to_current_time()
