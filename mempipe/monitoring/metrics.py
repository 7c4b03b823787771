"""
Prometheus metrics for the memory pipeline.

Usage:
    from mempipe.monitoring.metrics import track_pipeline_execution

    with track_pipeline_execution() as ctx:
        result = await run_stages()
        ctx["outcome"] = "completed"

    # Or manually
    ENRICHMENT_WRITES.labels(target="concepts", status="success").inc(2)
"""

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from starlette.applications import Starlette
from starlette.responses import Response
from starlette.routing import Route


# =============================================================================
# Metric Definitions
# =============================================================================

# Pipeline metrics
PIPELINE_EXECUTION_DURATION = Histogram(
    "mempipe_pipeline_execution_duration_seconds",
    "Duration of a full ingestion in seconds",
    ["outcome"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

PIPELINE_EXECUTION_TOTAL = Counter(
    "mempipe_pipeline_execution_total",
    "Total number of ingestions by terminal outcome",
    ["outcome"],
)

PIPELINE_STAGE_TOTAL = Counter(
    "mempipe_pipeline_stage_total",
    "Number of times each pipeline stage was reached",
    ["stage"],
)

ENRICHMENT_WRITES = Counter(
    "mempipe_enrichment_writes_total",
    "Concept and edge writes by status",
    ["target", "status"],
)

ANALYSIS_FAILURES = Counter(
    "mempipe_analysis_failures_total",
    "Semantic analyses that degraded the pipeline",
    ["reason"],
)

# HTTP metrics
API_REQUEST_DURATION = Histogram(
    "mempipe_api_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

API_REQUEST_TOTAL = Counter(
    "mempipe_api_request_total",
    "HTTP requests by route and status",
    ["method", "endpoint", "status_code"],
)

# Store metrics
STORE_OPERATIONS = Counter(
    "mempipe_store_operations_total",
    "Total store operations",
    ["store", "operation", "status"],
)

STORE_LATENCY = Histogram(
    "mempipe_store_latency_seconds",
    "Latency of store operations",
    ["store", "operation"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# Resilience metrics
CIRCUIT_BREAKER_STATE = Gauge(
    "mempipe_circuit_breaker_state",
    "Breaker state per service: 0 closed, 1 half open, 2 open",
    ["service"],
)

CIRCUIT_BREAKER_FAILURES = Counter(
    "mempipe_circuit_breaker_failures_total",
    "Failures counted against each breaker",
    ["service"],
)


# =============================================================================
# Tracking Context Managers
# =============================================================================


@contextmanager
def track_pipeline_execution() -> Generator[dict, None, None]:
    """
    Track duration and terminal outcome of one ingestion.

    The caller sets ctx["outcome"]; an escaping exception that was not
    classified by the caller is recorded as "failed".
    """
    started = time.perf_counter()
    ctx = {"outcome": "failed"}
    try:
        yield ctx
    finally:
        outcome = ctx["outcome"]
        PIPELINE_EXECUTION_DURATION.labels(outcome=outcome).observe(time.perf_counter() - started)
        PIPELINE_EXECUTION_TOTAL.labels(outcome=outcome).inc()


@contextmanager
def track_api_request(method: str, endpoint: str) -> Generator[dict, None, None]:
    """
    Track one HTTP request.

    The caller fills ctx["status_code"] and may replace ctx["endpoint"] with
    the matched route template. Requests that raise count as 500.
    """
    started = time.perf_counter()
    ctx = {"status_code": "500", "endpoint": endpoint}
    try:
        yield ctx
    finally:
        labels = {
            "method": method,
            "endpoint": ctx["endpoint"],
            "status_code": str(ctx["status_code"]),
        }
        API_REQUEST_DURATION.labels(**labels).observe(time.perf_counter() - started)
        API_REQUEST_TOTAL.labels(**labels).inc()


@contextmanager
def track_store_operation(store: str, operation: str) -> Generator[None, None, None]:
    """
    Count and time one backend call.

    Usage:
        with track_store_operation("sqlite", "insert"):
            memory_id = await loop.run_in_executor(None, _insert)
    """
    started = time.perf_counter()
    outcome = "error"
    try:
        yield
        outcome = "success"
    finally:
        STORE_OPERATIONS.labels(store=store, operation=operation, status=outcome).inc()
        STORE_LATENCY.labels(store=store, operation=operation).observe(
            time.perf_counter() - started
        )


def record_stage(stage: str) -> None:
    """Count a pipeline stage transition."""
    PIPELINE_STAGE_TOTAL.labels(stage=stage).inc()


def record_enrichment_writes(target: str, succeeded: int, failed: int) -> None:
    """Record the outcome of a concept or edge batch."""
    if succeeded:
        ENRICHMENT_WRITES.labels(target=target, status="success").inc(succeeded)
    if failed:
        ENRICHMENT_WRITES.labels(target=target, status="error").inc(failed)


def record_analysis_failure(reason: str) -> None:
    """Record a degraded analysis."""
    ANALYSIS_FAILURES.labels(reason=reason).inc()


_BREAKER_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


def set_breaker_state(service: str, state: str) -> None:
    CIRCUIT_BREAKER_STATE.labels(service=service).set(_BREAKER_STATE_VALUES.get(state, 0))


def record_breaker_failure(service: str) -> None:
    CIRCUIT_BREAKER_FAILURES.labels(service=service).inc()


# =============================================================================
# Scrape Endpoint
# =============================================================================


async def metrics_endpoint(request) -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def get_metrics_app() -> Starlette:
    """Starlette app serving the default registry; the API mounts it at /metrics."""
    return Starlette(routes=[Route("/", metrics_endpoint)])
