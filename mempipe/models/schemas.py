"""Pydantic models for memories, analyses and pipeline results."""

import json
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


MemoryId = Union[int, str]


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Ingestion
# =============================================================================


class RawMemory(BaseModel):
    """Normalized memory as accepted by the ingestion gate."""

    category: str
    topic: str
    content: str
    date: str = Field(..., description="Calendar date (YYYY-MM-DD)")
    received_at: str = Field(..., description="ISO-8601 UTC timestamp")


class CanonicalMemoryRecord(BaseModel):
    """Durable memory row owned by the record store."""

    model_config = ConfigDict(from_attributes=True)

    id: MemoryId
    category: str
    topic: str
    content: str
    date: str
    created_at: Optional[str] = None

    @field_validator("date", "created_at", mode="before")
    @classmethod
    def stringify_dates(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        if value is not None and not isinstance(value, str):
            return str(value)
        return value


# =============================================================================
# Semantic Analysis
# =============================================================================


def _coerce_string_list(value: Any) -> list[str]:
    """Accept lists, JSON-encoded lists and comma separated strings."""
    if value is None:
        return []
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                value = json.loads(stripped)
            except json.JSONDecodeError:
                value = stripped.strip("[]").split(",")
        else:
            value = stripped.split(",")
    return [str(item).strip() for item in value if str(item).strip()]


class Concept(BaseModel):
    """One semantically distinct idea extracted from a memory."""

    model_config = ConfigDict(populate_by_name=True)

    concept_title: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("concept_title", "title"),
    )
    concept_description: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("concept_description", "description"),
    )
    memory_type: str = "faktenwissen"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    mood: str = "neutral"
    keywords: list[str] = Field(default_factory=list)
    extracted_concepts: list[str] = Field(default_factory=list)

    @field_validator("keywords", "extracted_concepts", mode="before")
    @classmethod
    def split_lists(cls, value: Any) -> list[str]:
        return _coerce_string_list(value)


class SemanticAnalysis(BaseModel):
    """Structured output of one LLM analysis."""

    memory_type: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    mood: str = "neutral"
    extracted_concepts: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    category_suggestion: Optional[str] = None
    significance_signal: float = Field(default=0.0, ge=0.0, le=1.0)
    concepts: list[Concept] = Field(default_factory=list)

    @field_validator("keywords", "extracted_concepts", mode="before")
    @classmethod
    def split_lists(cls, value: Any) -> list[str]:
        return _coerce_string_list(value)

    @field_validator("memory_type", "category_suggestion", mode="before")
    @classmethod
    def normalize_category_names(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value

    @field_validator("significance_signal", mode="before")
    @classmethod
    def coerce_signal(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return 1.0 if value else 0.0
        if value is None:
            return 0.0
        return value

    @property
    def terms(self) -> set[str]:
        """Lower-cased concept and keyword vocabulary used for overlap scoring."""
        return {t.lower() for t in self.extracted_concepts + self.keywords if t}


# =============================================================================
# Policy Decisions
# =============================================================================


class SignificanceDecision(BaseModel):
    """Outcome of the significance gate."""

    significant: bool
    score: float = 0.0
    reason: str


class RoutingDecision(BaseModel):
    """Outcome of category reconciliation."""

    category: str
    corrected: bool = False


# =============================================================================
# Enrichment
# =============================================================================


class ConceptStoreResult(BaseModel):
    """Aggregate result of writing a memory's concepts."""

    success: bool
    stored: int = 0
    errors: list[str] = Field(default_factory=list)


class GraphNode(BaseModel):
    """Graph mirror of a canonical record."""

    id: str
    category: str
    topic: str
    content: str
    date: str
    created_at: Optional[str] = None
    concepts: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    embedding: Optional[list[float]] = None

    @classmethod
    def from_record(
        cls,
        record: CanonicalMemoryRecord,
        analysis: Optional[SemanticAnalysis] = None,
        embedding: Optional[list[float]] = None,
    ) -> "GraphNode":
        return cls(
            id=str(record.id),
            category=record.category,
            topic=record.topic,
            content=record.content,
            date=record.date,
            created_at=record.created_at,
            concepts=[c.lower() for c in analysis.extracted_concepts] if analysis else [],
            keywords=[k.lower() for k in analysis.keywords] if analysis else [],
            embedding=embedding,
        )


class GraphEdge(BaseModel):
    """Typed relationship between two memory nodes."""

    from_id: str
    to_id: str
    type: str
    properties: dict[str, Any] = Field(default_factory=dict)


class ForceRelationship(BaseModel):
    """Caller-requested edge created alongside derived ones."""

    target_memory_id: MemoryId
    relationship_type: str = "RELATED_TO"
    properties: dict[str, Any] = Field(default_factory=dict)


class LinkResult(BaseModel):
    """Aggregate result of graph linking for one memory."""

    stored_in_graph: bool = False
    relationships_created: int = 0
    errors: list[str] = Field(default_factory=list)


class RecencyEntry(BaseModel):
    """Entry of the bounded recency cache."""

    topic: str
    content: str
    date: str


# =============================================================================
# Pipeline Result
# =============================================================================


class PipelineResult(BaseModel):
    """Aggregated outcome of execute_advanced_pipeline."""

    memory_id: MemoryId
    stored_in_record_store: bool = True
    stored_in_concepts: bool = False
    stored_in_graph: bool = False
    relationships_created: int = 0
    significance_reason: str
    significant: bool = False
    category: str
    category_corrected: bool = False
    concepts_stored: int = 0
    stored_in_recency: bool = False
    errors: list[str] = Field(default_factory=list)
    stages: list[str] = Field(default_factory=list)
