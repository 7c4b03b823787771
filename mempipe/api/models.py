"""Pydantic models for API requests and responses.

Pipeline results and records are returned as the domain models from
mempipe.models; this module only adds request bodies and API envelopes.
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from mempipe.models import CanonicalMemoryRecord, ForceRelationship, MemoryId


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Memory Models
# =============================================================================


class MemoryCreate(BaseModel):
    """Request model for ingesting a memory."""

    category: str = Field(
        ...,
        description="Target category (must be in the allow-list)",
        json_schema_extra={"example": "projekte"},
    )
    topic: str = Field(
        ...,
        description="Short subject line",
        json_schema_extra={"example": "Graph migration"},
    )
    content: str = Field(
        ...,
        description="Memory body",
        json_schema_extra={"example": "Moved relationship storage to Neo4j."},
    )
    force_relationships: list[ForceRelationship] = Field(
        default_factory=list,
        description="Edges created in addition to derived ones (significant memories only)",
    )


class MoveRequest(BaseModel):
    """Request model for moving a memory to another category."""

    category: str = Field(..., description="New category", json_schema_extra={"example": "debugging"})


class DeleteResponse(BaseModel):
    memory_id: MemoryId
    deleted: bool


class MoveResponse(BaseModel):
    memory_id: MemoryId
    category: str
    moved: bool


class CategoryCountsResponse(BaseModel):
    """Number of memories per category."""

    categories: dict[str, int] = Field(default_factory=dict)
    total: int = 0


class RelatedMemory(BaseModel):
    """Memory reachable from another memory in the graph."""

    memory_id: str
    category: str
    topic: str
    content: str
    date: str
    distance: int
    relationship_types: list[str] = Field(default_factory=list)


class SearchResult(BaseModel):
    memory_id: str
    category: str
    topic: str
    content: str
    date: str
    source: Literal["record", "concept", "both", "graph", "related"]
    similarity: float = 0.0
    concept_title: Optional[str] = None
    connections: int = 0
    score: float = 0.0


class SearchResponse(BaseModel):
    query: str
    results: list[SearchResult] = Field(default_factory=list)
    total: int = 0


class GraphPath(BaseModel):
    """Path from a search hit to a memory reached through the graph."""

    from_id: str
    to_id: str
    distance: int
    relationship_types: list[str] = Field(default_factory=list)


class GraphSearchResponse(SearchResponse):
    sources: dict[str, int] = Field(default_factory=dict)
    relationships: list[GraphPath] = Field(default_factory=list)
    related_memories: int = 0
    relationship_depth: int = 0


class ConceptEntry(BaseModel):
    """Concept index entry derived from a memory."""

    id: str
    document: str
    concept_title: Optional[str] = None
    similarity: float = 0.0


class SimilarMemory(BaseModel):
    """Memory owning concepts close to another memory's text."""

    memory_id: str
    category: str
    topic: str
    content: str
    date: str
    relevance: float
    matched_concepts: int


class AdvancedMemoryResponse(BaseModel):
    """One memory with its concepts, graph neighbours and similar memories."""

    memory: CanonicalMemoryRecord
    in_graph: bool = False
    concepts: list[ConceptEntry] = Field(default_factory=list)
    related_memories: list[RelatedMemory] = Field(default_factory=list)
    similar_memories: list[SimilarMemory] = Field(default_factory=list)


# =============================================================================
# Health Check Models
# =============================================================================


class HealthStatus(BaseModel):
    """Individual service health status."""

    status: Literal["healthy", "unhealthy", "degraded", "disabled"] = Field(
        ..., description="Service status"
    )
    latency_ms: Optional[float] = Field(None, description="Response latency in milliseconds")
    message: Optional[str] = Field(None, description="Additional status message")


class HealthCheckResponse(BaseModel):
    """Response model for health check endpoint."""

    status: Literal["healthy", "unhealthy", "degraded"] = Field(
        ..., description="Overall system status"
    )
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(..., description="Check timestamp")
    services: dict[str, HealthStatus] = Field(
        default_factory=dict,
        description="Individual service statuses",
    )
    circuit_breakers: dict[str, str] = Field(
        default_factory=dict,
        description="State of each circuit breaker",
    )
    uptime_seconds: Optional[float] = Field(None, description="Server uptime in seconds")


# =============================================================================
# Error Models
# =============================================================================


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    detail: Optional[Any] = Field(None, description="Additional error details")
    path: Optional[str] = Field(None, description="Request path that caused the error")
    timestamp: datetime = Field(default_factory=_utc_now, description="Error timestamp")


class ValidationErrorDetail(BaseModel):
    """Details for validation errors."""

    field: str = Field(..., description="Field that failed validation")
    message: str = Field(..., description="Validation error message")
    value: Optional[Any] = Field(None, description="Invalid value provided")


class ValidationErrorResponse(BaseModel):
    """Response for validation errors."""

    error: str = Field(default="validation_error", description="Error type")
    message: str = Field(default="Request validation failed", description="Error message")
    errors: list[ValidationErrorDetail] = Field(..., description="List of validation errors")
    timestamp: datetime = Field(default_factory=_utc_now, description="Error timestamp")
