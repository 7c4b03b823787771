"""
Monitoring and observability for the memory pipeline.

Provides Prometheus metrics for ingestion outcomes, stage transitions,
enrichment writes, store latency and circuit breaker state.

Usage:
    from mempipe.monitoring import track_pipeline_execution

    with track_pipeline_execution() as ctx:
        ...
        ctx["outcome"] = "completed"
"""

from mempipe.monitoring.metrics import (
    PIPELINE_EXECUTION_DURATION,
    PIPELINE_EXECUTION_TOTAL,
    ENRICHMENT_WRITES,
    API_REQUEST_DURATION,
    STORE_OPERATIONS,
    CIRCUIT_BREAKER_STATE,
    track_pipeline_execution,
    track_api_request,
    track_store_operation,
    record_stage,
    record_enrichment_writes,
    record_analysis_failure,
    set_breaker_state,
    record_breaker_failure,
    get_metrics_app,
)

__all__ = [
    # Prometheus metrics
    "PIPELINE_EXECUTION_DURATION",
    "PIPELINE_EXECUTION_TOTAL",
    "ENRICHMENT_WRITES",
    "API_REQUEST_DURATION",
    "STORE_OPERATIONS",
    "CIRCUIT_BREAKER_STATE",
    # Context managers
    "track_pipeline_execution",
    "track_api_request",
    "track_store_operation",
    # Helper functions
    "record_stage",
    "record_enrichment_writes",
    "record_analysis_failure",
    "set_breaker_state",
    "record_breaker_failure",
    "get_metrics_app",
]
