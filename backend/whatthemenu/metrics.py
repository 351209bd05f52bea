"""Prometheus metrics for monitoring and observability."""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from functools import lru_cache

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# ==============================================================================
# APPLICATION INFO
# ==============================================================================

app_info = Info("whatthemenu", "WhatTheMenu explanation API information")
app_info.info({"version": "0.1.0", "service": "whatthemenu-api"})

# ==============================================================================
# HTTP METRICS
# ==============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0),
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently in progress",
    ["method", "endpoint"],
)

# ==============================================================================
# EXPLANATION METRICS
# ==============================================================================

dish_explanations_total = Counter(
    "dish_explanations_total",
    "Dish explanations served",
    ["source", "language"],
)

dish_match_score = Histogram(
    "dish_match_score",
    "Best corpus similarity score per resolution",
    ["outcome"],
    buckets=(0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.85, 0.9, 0.95, 1.0),
)

dish_corpus_inserts_total = Counter(
    "dish_corpus_inserts_total",
    "Corpus write decisions after a fresh generation",
    ["result"],
)

generator_failures_total = Counter(
    "generator_failures_total",
    "Failed generation calls",
)

corpus_degraded_total = Counter(
    "corpus_degraded_total",
    "Corpus store operations that failed and were degraded",
    ["operation"],
)

# ==============================================================================
# GOVERNOR METRICS
# ==============================================================================

governor_admissions_total = Counter(
    "governor_admissions_total",
    "Admission decisions taken by the request governor",
    ["result"],
)


@lru_cache(maxsize=2048)
def normalize_endpoint(path: str) -> str:
    """
    Normalize endpoint path to reduce cardinality.

    Examples:
        /restaurants/123 -> /restaurants/{id}
    """
    path = re.sub(r"/\d+", "/{id}", path)
    path = re.sub(r"/[a-zA-Z0-9_-]{20,}", "/{id}", path)
    return path


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP request metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        endpoint = normalize_endpoint(request.url.path)
        http_requests_in_progress.labels(method=method, endpoint=endpoint).inc()
        start_time = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            duration = time.perf_counter() - start_time
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)
            http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
            http_requests_in_progress.labels(method=method, endpoint=endpoint).dec()


def get_metrics() -> Response:
    """Generate Prometheus metrics response."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "PrometheusMiddleware",
    "corpus_degraded_total",
    "dish_corpus_inserts_total",
    "dish_explanations_total",
    "dish_match_score",
    "generator_failures_total",
    "get_metrics",
    "governor_admissions_total",
    "normalize_endpoint",
]
