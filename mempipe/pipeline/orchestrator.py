"""
Pipeline Orchestrator.

Runs one memory through the ingestion stages and aggregates the outcome.
The canonical record is the only write that may fail an ingestion: once it
is stored, analysis, concept, graph and recency failures only degrade the
result flags and are listed in PipelineResult.errors.

Usage:
    pipeline = MemoryPipeline(
        record_store=store,
        gate=IngestionGate(settings.allowed_categories),
        router=CategoryRouter(settings.allowed_categories),
        evaluator=SignificanceEvaluator(),
        recency_cache=cache,
        analyzer=analyzer,
        concept_writer=writer,
        relationship_builder=builder,
    )
    result = await pipeline.execute_advanced_pipeline("projekte", "Topic", "Notes")
"""

from typing import Any, Awaitable, Callable, Iterable, Optional, Union

import structlog

from mempipe.core.exceptions import AnalysisUnavailable, ValidationError
from mempipe.knowledge.concept_index import ConceptIndexWriter
from mempipe.knowledge.relationships import RelationshipBuilder
from mempipe.models import (
    CanonicalMemoryRecord,
    ConceptStoreResult,
    ForceRelationship,
    LinkResult,
    MemoryId,
    PipelineResult,
    RecencyEntry,
    RoutingDecision,
)
from mempipe.monitoring.metrics import track_pipeline_execution
from mempipe.pipeline.analyzer import SemanticAnalyzer
from mempipe.pipeline.gate import IngestionGate
from mempipe.pipeline.router import CATEGORY_CORRECTED, CategoryRouter
from mempipe.pipeline.significance import SignificanceEvaluator
from mempipe.pipeline.state import PipelineContext, PipelineStage
from mempipe.storage.base import CATEGORY_SEARCH_LIMIT, RecordStore
from mempipe.storage.recency import RecencyCache

logger = structlog.get_logger(__name__)

Stage = Callable[[PipelineContext], Awaitable[None]]


class MemoryPipeline:
    """
    Advanced memory pipeline over injected collaborators.

    Args:
        record_store: Canonical store; the only mandatory backend.
        gate: Validates and normalizes input.
        router: Reconciles caller category with the LLM suggestion.
        evaluator: Significance gate.
        recency_cache: Bounded FIFO of recent memories.
        analyzer: Semantic analyzer; None runs every ingestion canonical-only.
        concept_writer: Concept index writer; None skips concept enrichment.
        relationship_builder: Graph linker; None skips graph enrichment.
    """

    def __init__(
        self,
        record_store: RecordStore,
        gate: IngestionGate,
        router: CategoryRouter,
        evaluator: SignificanceEvaluator,
        recency_cache: RecencyCache,
        analyzer: Optional[SemanticAnalyzer] = None,
        concept_writer: Optional[ConceptIndexWriter] = None,
        relationship_builder: Optional[RelationshipBuilder] = None,
    ) -> None:
        self.record_store = record_store
        self.gate = gate
        self.router = router
        self.evaluator = evaluator
        self.recency_cache = recency_cache
        self.analyzer = analyzer
        self.concept_writer = concept_writer
        self.relationship_builder = relationship_builder

        self._stages: tuple[Stage, ...] = (
            self._validate,
            self._analyze,
            self._evaluate,
            self._route,
            self._store_canonical,
            self._enrich,
            self._append_recency,
        )

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    async def execute_advanced_pipeline(
        self,
        category: str,
        topic: str,
        content: str,
        force_relationships: Optional[Iterable[Union[ForceRelationship, dict[str, Any]]]] = None,
    ) -> PipelineResult:
        """
        Ingest one memory.

        Raises:
            ValidationError: Input rejected; nothing was persisted.
            StoreUnavailable: The canonical write failed; nothing was persisted.
        """
        ctx = PipelineContext(
            category=category,
            topic=topic,
            content=content,
            requested_relationships=list(force_relationships or []),
        )

        with track_pipeline_execution() as metrics:
            try:
                for stage in self._stages:
                    await stage(ctx)
            except ValidationError:
                ctx.advance(PipelineStage.REJECTED)
                metrics["outcome"] = "rejected"
                raise

            ctx.advance(PipelineStage.COMPLETED)
            metrics["outcome"] = "degraded" if ctx.errors else "completed"

        result = self._build_result(ctx)
        logger.info(
            "pipeline_completed",
            memory_id=result.memory_id,
            category=result.category,
            significant=result.significant,
            stored_in_concepts=result.stored_in_concepts,
            stored_in_graph=result.stored_in_graph,
            relationships_created=result.relationships_created,
            errors=len(result.errors),
        )
        return result

    async def _validate(self, ctx: PipelineContext) -> None:
        ctx.memory = self.gate.validate(ctx.category, ctx.topic, ctx.content)
        ctx.force_relationships = self.gate.parse_force_relationships(ctx.requested_relationships)
        ctx.advance(PipelineStage.VALIDATED)

    async def _analyze(self, ctx: PipelineContext) -> None:
        if self.analyzer is None:
            ctx.analysis_error = "not_configured"
            return

        try:
            ctx.analysis = await self.analyzer.analyze(ctx.memory.topic, ctx.memory.content)
        except AnalysisUnavailable as e:
            ctx.analysis_error = e.reason
            ctx.errors.append(e.message)
            return
        ctx.advance(PipelineStage.ANALYZED)

    async def _evaluate(self, ctx: PipelineContext) -> None:
        ctx.decision = self.evaluator.evaluate(ctx.analysis)

    async def _route(self, ctx: PipelineContext) -> None:
        if ctx.analysis is None:
            ctx.routing = RoutingDecision(category=ctx.memory.category)
        else:
            ctx.routing = self.router.resolve(
                ctx.memory.category,
                ctx.analysis.category_suggestion,
                ctx.analysis.confidence,
            )
        ctx.advance(PipelineStage.ROUTED)

    async def _store_canonical(self, ctx: PipelineContext) -> None:
        memory = ctx.memory
        memory_id = await self.record_store.insert(
            ctx.routing.category,
            memory.topic,
            memory.content,
            memory.date,
            created_at=memory.received_at,
        )
        ctx.record = CanonicalMemoryRecord(
            id=memory_id,
            category=ctx.routing.category,
            topic=memory.topic,
            content=memory.content,
            date=memory.date,
            created_at=memory.received_at,
        )
        ctx.advance(PipelineStage.CANONICAL_STORED)
        logger.info(
            "memory_stored",
            memory_id=memory_id,
            category=ctx.routing.category,
            backend=self.record_store.name,
        )

    async def _enrich(self, ctx: PipelineContext) -> None:
        if not ctx.is_significant:
            ctx.advance(PipelineStage.ENRICHMENT_SKIPPED)
            return

        write_concepts = self.concept_writer is not None and bool(ctx.analysis.concepts)
        link_graph = self.relationship_builder is not None
        if not (write_concepts or link_graph):
            ctx.advance(PipelineStage.ENRICHMENT_SKIPPED)
            return

        if write_concepts:
            try:
                ctx.concept_result = await self.concept_writer.store(
                    ctx.record, ctx.analysis.concepts
                )
            except Exception as e:
                logger.warning("concept_enrichment_failed", memory_id=ctx.record.id, error=str(e))
                ctx.concept_result = ConceptStoreResult(
                    success=False, stored=0, errors=[f"Concept store: {e}"]
                )
            ctx.errors.extend(ctx.concept_result.errors)
            if ctx.concept_result.stored:
                ctx.advance(PipelineStage.CONCEPTS_STORED)

        if link_graph:
            try:
                ctx.link_result = await self.relationship_builder.link(
                    ctx.record, ctx.analysis, ctx.force_relationships
                )
            except Exception as e:
                logger.warning("graph_enrichment_failed", memory_id=ctx.record.id, error=str(e))
                ctx.link_result = LinkResult(errors=[f"Graph: {e}"])
            ctx.errors.extend(ctx.link_result.errors)
            if ctx.link_result.stored_in_graph:
                ctx.advance(PipelineStage.GRAPH_LINKED)

    async def _append_recency(self, ctx: PipelineContext) -> None:
        entry = RecencyEntry(topic=ctx.record.topic, content=ctx.record.content, date=ctx.record.date)
        try:
            await self.recency_cache.append(entry)
            ctx.stored_in_recency = True
        except Exception as e:
            logger.warning("recency_append_failed", memory_id=ctx.record.id, error=str(e))
            ctx.errors.append(f"Recency cache: {e}")
        ctx.advance(PipelineStage.RECENCY_APPENDED)

    def _build_result(self, ctx: PipelineContext) -> PipelineResult:
        if ctx.routing.corrected:
            reason = CATEGORY_CORRECTED
        elif ctx.analysis_error is not None:
            reason = f"analysis_unavailable: {ctx.analysis_error}"
        else:
            reason = ctx.decision.reason

        concepts_stored = ctx.concept_result.stored if ctx.concept_result else 0
        link = ctx.link_result or LinkResult()
        return PipelineResult(
            memory_id=ctx.record.id,
            stored_in_record_store=True,
            stored_in_concepts=concepts_stored > 0,
            stored_in_graph=link.stored_in_graph,
            relationships_created=link.relationships_created,
            significance_reason=reason,
            significant=ctx.is_significant,
            category=ctx.record.category,
            category_corrected=ctx.routing.corrected,
            concepts_stored=concepts_stored,
            stored_in_recency=ctx.stored_in_recency,
            errors=ctx.errors,
            stages=[stage.value for stage in ctx.history],
        )

    # -------------------------------------------------------------------------
    # Record lifecycle
    # -------------------------------------------------------------------------

    async def get_memory(self, memory_id: MemoryId) -> Optional[CanonicalMemoryRecord]:
        return await self.record_store.get(memory_id)

    async def delete_memory(self, memory_id: MemoryId) -> bool:
        """
        Delete a canonical record and its graph node.

        Concept entries of the memory are left in place.
        """
        deleted = await self.record_store.delete(memory_id)
        if not deleted:
            logger.info("memory_delete_not_found", memory_id=memory_id)
            return False

        if self.relationship_builder is not None:
            try:
                await self.relationship_builder.remove(memory_id)
            except Exception as e:
                logger.warning("graph_node_delete_failed", memory_id=memory_id, error=str(e))

        logger.info("memory_deleted", memory_id=memory_id)
        return True

    async def move_memory(self, memory_id: MemoryId, new_category: str) -> bool:
        """Change a memory's category; invalid categories are refused without a write."""
        if not self.gate.is_allowed(new_category):
            logger.info("memory_move_rejected", memory_id=memory_id, category=new_category)
            return False

        category = new_category.strip().lower()
        moved = await self.record_store.move(memory_id, category)
        if not moved:
            logger.info("memory_move_not_found", memory_id=memory_id)
            return False

        if self.relationship_builder is not None:
            try:
                await self.relationship_builder.update_category(memory_id, category)
            except Exception as e:
                logger.warning("graph_node_move_failed", memory_id=memory_id, error=str(e))

        logger.info("memory_moved", memory_id=memory_id, category=category)
        return True

    # -------------------------------------------------------------------------
    # Retrieval
    # -------------------------------------------------------------------------

    async def search_basic(
        self, query: str, categories: Optional[list[str]] = None
    ) -> list[CanonicalMemoryRecord]:
        return await self.record_store.search_basic(query, categories)

    async def search_by_category(
        self, category: str, limit: int = CATEGORY_SEARCH_LIMIT
    ) -> list[CanonicalMemoryRecord]:
        return await self.record_store.search_by_category(category, limit)

    async def list_categories(self) -> dict[str, int]:
        return await self.record_store.list_categories()

    async def recent_memories(self, limit: Optional[int] = None) -> list[RecencyEntry]:
        return await self.recency_cache.recent(limit)

    async def find_related(
        self,
        memory_id: MemoryId,
        types: Optional[list[str]] = None,
        max_depth: int = 2,
    ) -> list[dict[str, Any]]:
        if self.relationship_builder is None:
            return []
        return await self.relationship_builder.find_related(memory_id, types, max_depth)

    async def graph_statistics(self) -> dict[str, Any]:
        if self.relationship_builder is None:
            return {"node_count": 0, "edge_count": 0, "edge_types": {}}
        return await self.relationship_builder.statistics()
