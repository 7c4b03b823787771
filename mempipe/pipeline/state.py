"""Pipeline state definitions.

The orchestrator threads one PipelineContext through its stages. Each stage
reads what earlier stages produced and records the state it reached.

State Flow:
    RECEIVED → VALIDATED → ANALYZED (optional) → ROUTED → CANONICAL_STORED
    ├── ENRICHMENT_SKIPPED
    └── CONCEPTS_STORED (if any concept landed) → GRAPH_LINKED (if the node landed)
    → RECENCY_APPENDED → COMPLETED

    REJECTED is terminal and only reachable before CANONICAL_STORED.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import structlog

from mempipe.models import (
    CanonicalMemoryRecord,
    ConceptStoreResult,
    ForceRelationship,
    LinkResult,
    RawMemory,
    RoutingDecision,
    SemanticAnalysis,
    SignificanceDecision,
)
from mempipe.monitoring.metrics import record_stage

logger = structlog.get_logger(__name__)


class PipelineStage(str, Enum):
    """States of one ingestion."""
    RECEIVED = "received"
    VALIDATED = "validated"
    ANALYZED = "analyzed"
    ROUTED = "routed"
    CANONICAL_STORED = "canonical_stored"
    ENRICHMENT_SKIPPED = "enrichment_skipped"
    CONCEPTS_STORED = "concepts_stored"
    GRAPH_LINKED = "graph_linked"
    RECENCY_APPENDED = "recency_appended"
    COMPLETED = "completed"
    REJECTED = "rejected"


@dataclass
class PipelineContext:
    """Mutable state shared by the stages of one ingestion."""

    category: str
    topic: str
    content: str
    requested_relationships: list[Any] = field(default_factory=list)
    force_relationships: list[ForceRelationship] = field(default_factory=list)

    stage: PipelineStage = PipelineStage.RECEIVED
    history: list[PipelineStage] = field(default_factory=lambda: [PipelineStage.RECEIVED])

    memory: Optional[RawMemory] = None
    analysis: Optional[SemanticAnalysis] = None
    analysis_error: Optional[str] = None
    decision: Optional[SignificanceDecision] = None
    routing: Optional[RoutingDecision] = None
    record: Optional[CanonicalMemoryRecord] = None
    concept_result: Optional[ConceptStoreResult] = None
    link_result: Optional[LinkResult] = None
    stored_in_recency: bool = False
    errors: list[str] = field(default_factory=list)

    def advance(self, stage: PipelineStage) -> None:
        """Record that the ingestion reached stage."""
        self.stage = stage
        self.history.append(stage)
        record_stage(stage.value)
        logger.debug(
            "pipeline_stage_reached",
            stage=stage.value,
            memory_id=self.record.id if self.record else None,
        )

    @property
    def is_significant(self) -> bool:
        return bool(self.decision and self.decision.significant)
