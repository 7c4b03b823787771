"""Health check endpoints for the memory pipeline API.

Reports the canonical record store, each enrichment backend and the state
of the circuit breakers. Only the record store is critical: a failing
enrichment backend makes the service degraded, not unready.
"""

from datetime import datetime, timezone
import time
from typing import Any, Awaitable, Callable, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException

from mempipe.api.dependencies import get_container
from mempipe.api.models import HealthCheckResponse, HealthStatus
from mempipe.core.circuit_breaker import get_all_circuit_breakers
from mempipe.core.container import DependencyContainer

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])

API_VERSION = "1.0.0"

# Track server start time for uptime calculation
_server_start_time: Optional[float] = None


def set_server_start_time() -> None:
    """Set the server start time. Called on application startup."""
    global _server_start_time
    _server_start_time = time.time()


def get_uptime_seconds() -> Optional[float]:
    """Get server uptime in seconds."""
    if _server_start_time is None:
        return None
    return time.time() - _server_start_time


async def _timed_check(name: str, check: Callable[[], Awaitable[Any]]) -> HealthStatus:
    start_time = time.time()
    try:
        healthy = await check()
        latency = (time.time() - start_time) * 1000
        if healthy is False:
            return HealthStatus(
                status="unhealthy",
                latency_ms=round(latency, 2),
                message=f"{name} health check failed",
            )
        return HealthStatus(
            status="healthy",
            latency_ms=round(latency, 2),
            message=f"Connected to {name}",
        )
    except Exception as e:
        latency = (time.time() - start_time) * 1000
        logger.error("health_check_failed", service=name, error=str(e))
        return HealthStatus(
            status="unhealthy",
            latency_ms=round(latency, 2),
            message=f"{name} connection failed: {str(e)[:100]}",
        )


async def check_record_store_health(container: DependencyContainer) -> HealthStatus:
    """Check canonical record store connectivity."""
    store = container.record_store
    return await _timed_check(store.name, store.health_check)


async def check_graph_health(container: DependencyContainer) -> HealthStatus:
    """Check Neo4j connectivity."""
    if "graph" in container.disabled_backends:
        return HealthStatus(status="unhealthy", message="Neo4j failed to connect at startup")
    graph = container.graph
    if graph is None:
        return HealthStatus(status="disabled", message="Neo4j not configured")
    return await _timed_check("neo4j", graph.health_check)


async def check_concept_store_health(container: DependencyContainer) -> HealthStatus:
    """Check Pinecone connectivity."""
    if "concepts" in container.disabled_backends:
        return HealthStatus(status="unhealthy", message="Pinecone failed to connect at startup")
    concept_store = container.concept_store
    if concept_store is None:
        return HealthStatus(status="disabled", message="Pinecone not configured")
    return await _timed_check("pinecone", concept_store.count)


async def check_recency_health(container: DependencyContainer) -> HealthStatus:
    """Check the recency cache."""
    return await _timed_check(type(container.recency).__name__, container.recency.count)


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health Check",
    description="Check the health status of the API and its dependencies.",
)
async def health_check(
    container: DependencyContainer = Depends(get_container),
) -> HealthCheckResponse:
    """
    Perform a comprehensive health check of all system components.

    Returns the status of:
    - Record store (SQLite or Supabase)
    - Neo4j (Relationship graph)
    - Pinecone (Concept index)
    - Recency cache (Redis or in-memory)
    """
    services = {
        "record_store": await check_record_store_health(container),
        "neo4j": await check_graph_health(container),
        "pinecone": await check_concept_store_health(container),
        "recency": await check_recency_health(container),
    }

    breakers = {name: b.state.value for name, b in get_all_circuit_breakers().items()}

    # Determine overall status
    if services["record_store"].status == "unhealthy":
        overall_status = "unhealthy"
    elif any(s.status == "unhealthy" for s in services.values()) or "open" in breakers.values():
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return HealthCheckResponse(
        status=overall_status,
        version=API_VERSION,
        timestamp=datetime.now(timezone.utc),
        services=services,
        circuit_breakers=breakers,
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/health/live",
    summary="Liveness Check",
    description="Simple liveness check for container orchestration.",
)
async def liveness() -> dict:
    """
    Simple liveness probe for Kubernetes/Cloud Run.

    Returns 200 if the service is alive.
    """
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get(
    "/health/ready",
    summary="Readiness Check",
    description="Check if the service is ready to accept traffic.",
)
async def readiness(
    container: DependencyContainer = Depends(get_container),
) -> dict:
    """
    Readiness probe for Kubernetes/Cloud Run.

    Returns 200 only if the canonical record store is available.
    """
    record_store_status = await check_record_store_health(container)

    if record_store_status.status == "unhealthy":
        raise HTTPException(
            status_code=503,
            detail="Service not ready: record store unavailable",
        )

    return {"status": "ready", "timestamp": datetime.now(timezone.utc).isoformat()}
