"""Prometheus metrics for the application."""

import time

from prometheus_client import Counter, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# --- Metrics ---

APP_INFO = Info("app", "Passage evaluation service info")
APP_INFO.info({"version": "1.0.0", "name": "passage_evaluator"})

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.05, 0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120, 300],
)

PROVIDER_CALLS = Counter(
    "provider_calls_total",
    "Outbound LLM provider calls",
    ["vendor", "outcome"],
)

PROVIDER_LATENCY = Histogram(
    "provider_call_duration_seconds",
    "LLM provider call latency in seconds",
    ["vendor"],
    buckets=[0.5, 1, 2.5, 5, 10, 20, 40, 60, 120],
)

NORMALIZER_STRATEGY = Counter(
    "normalizer_strategy_total",
    "Which parsing strategy produced a phase result",
    ["strategy"],
)

NORMALIZER_BACKFILLS = Counter(
    "normalizer_backfilled_metrics_total",
    "Metric results replaced by the fallback default",
)


# --- Middleware ---

# Collapse the {mode} segment so cardinality stays bounded
_PATH_PREFIXES = ("/api/analyze/single/", "/api/analyze/compare/", "/api/download/")


def _normalize_path(path: str) -> str:
    """Replace the trailing mode segment with {mode}."""
    for prefix in _PATH_PREFIXES:
        if path.startswith(prefix):
            return f"{prefix}{{mode}}"
    return path


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect HTTP request metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        REQUEST_COUNT.labels(method=method, path=path, status=response.status_code).inc()
        REQUEST_DURATION.labels(method=method, path=path).observe(duration)

        return response


def metrics_response() -> Response:
    """Generate Prometheus /metrics response."""
    return Response(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
