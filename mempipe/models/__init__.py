"""Pydantic models shared by the pipeline, stores and API."""

from mempipe.models.schemas import (
    MemoryId,
    RawMemory,
    CanonicalMemoryRecord,
    Concept,
    SemanticAnalysis,
    SignificanceDecision,
    RoutingDecision,
    ConceptStoreResult,
    GraphNode,
    GraphEdge,
    ForceRelationship,
    LinkResult,
    RecencyEntry,
    PipelineResult,
    utc_now_iso,
)

__all__ = [
    "MemoryId",
    "RawMemory",
    "CanonicalMemoryRecord",
    "Concept",
    "SemanticAnalysis",
    "SignificanceDecision",
    "RoutingDecision",
    "ConceptStoreResult",
    "GraphNode",
    "GraphEdge",
    "ForceRelationship",
    "LinkResult",
    "RecencyEntry",
    "PipelineResult",
    "utc_now_iso",
]
