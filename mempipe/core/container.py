"""
Dependency Injection Container for the memory pipeline.

Builds every collaborator once from Settings and injects them into the
pipeline. The canonical record store is mandatory; enrichment backends
(LLM, concept index, graph) are optional and are disabled when they are not
configured or fail to connect, leaving the pipeline in canonical-only mode.

Usage:
    # At application startup
    container = DependencyContainer()
    await container.initialize()

    result = await container.pipeline.execute_advanced_pipeline(
        "projekte", "Topic", "Notes"
    )

    # At shutdown
    await container.shutdown()
"""

from __future__ import annotations

import asyncio

import structlog
from typing import TYPE_CHECKING

from mempipe.config.settings import Settings, get_settings
from mempipe.core.exceptions import InitializationError

if TYPE_CHECKING:
    from mempipe.knowledge.cohere_embeddings import CohereEmbeddingsService
    from mempipe.knowledge.cohere_reranker import CohereReranker
    from mempipe.knowledge.neo4j_client import Neo4jGraphStore
    from mempipe.knowledge.pinecone_client import PineconeConceptStore
    from mempipe.llm.anthropic_client import AnthropicAnalysisBackend
    from mempipe.pipeline.orchestrator import MemoryPipeline
    from mempipe.pipeline.search import MemorySearch
    from mempipe.storage.base import RecordStore
    from mempipe.storage.recency import RecencyCache

logger = structlog.get_logger(__name__)


class DependencyContainer:
    """
    Central container for all pipeline dependencies.

    Services are created on first access and cached. initialize() connects
    them; the pipeline and search facades are assembled from whatever
    survived initialization.

    Example:
        container = DependencyContainer(settings)
        await container.initialize()

        pipeline = container.pipeline
        graph = container.graph  # None when Neo4j is not configured

        await container.shutdown()
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the container.

        Args:
            settings: Application settings. Defaults to get_settings().
        """
        self._settings = settings or get_settings()
        self._record_store: RecordStore | None = None
        self._embeddings: CohereEmbeddingsService | None = None
        self._reranker: CohereReranker | None = None
        self._concept_store: PineconeConceptStore | None = None
        self._graph: Neo4jGraphStore | None = None
        self._analysis_backend: AnthropicAnalysisBackend | None = None
        self._recency: RecencyCache | None = None
        self._pipeline: MemoryPipeline | None = None
        self._search: MemorySearch | None = None

        # Backends switched off after a failed connect
        self._disabled: set[str] = set()
        self._initialized = False

        logger.info("dependency_container_created")

    @property
    def settings(self) -> Settings:
        """Get application settings."""
        return self._settings

    @property
    def record_store(self) -> "RecordStore":
        """
        Get the canonical record store (lazy initialization).

        Raises:
            InitializationError: If the store cannot be created.
        """
        if self._record_store is None:
            try:
                if self._settings.record_store_backend == "supabase":
                    from mempipe.storage.supabase_store import SupabaseRecordStore

                    self._record_store = SupabaseRecordStore(
                        url=self._settings.supabase_url,
                        key=self._settings.supabase_key.get_secret_value(),
                        table=self._settings.supabase_table,
                    )
                else:
                    from mempipe.storage.sqlite_store import SQLiteRecordStore

                    self._record_store = SQLiteRecordStore(self._settings.sqlite_db_path)
                logger.info("record_store_created", backend=self._record_store.name)
            except Exception as e:
                logger.error("record_store_creation_failed", error=str(e))
                raise InitializationError(
                    "RecordStore",
                    f"Failed to create record store: {e}",
                    {"backend": self._settings.record_store_backend},
                )
        return self._record_store

    @property
    def embeddings(self) -> "CohereEmbeddingsService | None":
        """Get the embeddings service, or None when Cohere is not configured."""
        if self._embeddings is None and self._settings.cohere_api_key is not None:
            from mempipe.knowledge.cohere_embeddings import CohereEmbeddingsService

            self._embeddings = CohereEmbeddingsService(
                api_key=self._settings.cohere_api_key.get_secret_value(),
                model=self._settings.cohere_embedding_model,
                dimension=self._settings.cohere_embedding_dimension,
            )
        return self._embeddings

    @property
    def reranker(self) -> "CohereReranker | None":
        """Get the rerank model behind the llm search strategy, or None without Cohere."""
        if self._reranker is None and self._settings.cohere_api_key is not None:
            from mempipe.knowledge.cohere_reranker import CohereReranker

            self._reranker = CohereReranker(
                api_key=self._settings.cohere_api_key.get_secret_value(),
                model=self._settings.cohere_rerank_model,
            )
        return self._reranker

    @property
    def concept_store(self) -> "PineconeConceptStore | None":
        """Get the concept store, or None when disabled."""
        if "concepts" in self._disabled or not self._settings.concepts_enabled:
            return None
        if self._concept_store is None:
            from mempipe.knowledge.pinecone_client import PineconeConceptStore

            self._concept_store = PineconeConceptStore(
                api_key=self._settings.pinecone_api_key.get_secret_value(),
                index_name=self._settings.pinecone_index_name,
                embeddings=self.embeddings,
                dimension=self._settings.cohere_embedding_dimension,
                namespace=self._settings.pinecone_namespace,
            )
            logger.info("concept_store_created", index=self._settings.pinecone_index_name)
        return self._concept_store

    @property
    def graph(self) -> "Neo4jGraphStore | None":
        """Get the graph store, or None when disabled."""
        if "graph" in self._disabled or not self._settings.graph_enabled:
            return None
        if self._graph is None:
            from mempipe.knowledge.neo4j_client import Neo4jGraphStore

            self._graph = Neo4jGraphStore(
                uri=self._settings.neo4j_uri,
                user=self._settings.neo4j_user,
                password=self._settings.neo4j_password.get_secret_value(),
                database=self._settings.neo4j_database,
            )
            logger.info("graph_store_created", uri=self._settings.neo4j_uri)
        return self._graph

    @property
    def analysis_backend(self) -> "AnthropicAnalysisBackend | None":
        """Get the LLM analysis backend, or None when Anthropic is not configured."""
        if not self._settings.analysis_enabled:
            return None
        if self._analysis_backend is None:
            from mempipe.llm.anthropic_client import AnthropicAnalysisBackend

            self._analysis_backend = AnthropicAnalysisBackend(
                api_key=self._settings.anthropic_api_key.get_secret_value(),
                categories=self._settings.allowed_categories,
                model=self._settings.anthropic_model,
                max_concepts=self._settings.max_concepts,
            )
            logger.info("analysis_backend_created", model=self._settings.anthropic_model)
        return self._analysis_backend

    @property
    def recency(self) -> "RecencyCache":
        """
        Get the recency cache.

        Falls back to an in-memory cache when accessed before initialize().
        """
        if self._recency is None:
            from mempipe.storage.recency import InMemoryRecencyCache

            self._recency = InMemoryRecencyCache(capacity=self._settings.recency_capacity)
        return self._recency

    @property
    def pipeline(self) -> "MemoryPipeline":
        """Get the memory pipeline wired to every available collaborator."""
        if self._pipeline is None:
            from mempipe.knowledge.concept_index import ConceptIndexWriter
            from mempipe.knowledge.relationships import RelationshipBuilder
            from mempipe.pipeline.analyzer import SemanticAnalyzer
            from mempipe.pipeline.gate import IngestionGate
            from mempipe.pipeline.orchestrator import MemoryPipeline
            from mempipe.pipeline.router import CategoryRouter
            from mempipe.pipeline.significance import (
                SignificanceEvaluator,
                SignificancePolicy,
            )

            s = self._settings
            backend = self.analysis_backend
            concept_store = self.concept_store
            graph = self.graph

            self._pipeline = MemoryPipeline(
                record_store=self.record_store,
                gate=IngestionGate(s.allowed_categories),
                router=CategoryRouter(s.allowed_categories, s.category_override_threshold),
                evaluator=SignificanceEvaluator(
                    SignificancePolicy(
                        threshold=s.significance_threshold,
                        confidence_weight=s.significance_confidence_weight,
                        signal_confidence=s.significance_signal_confidence,
                    )
                ),
                recency_cache=self.recency,
                analyzer=SemanticAnalyzer(
                    backend,
                    timeout=s.llm_timeout_seconds,
                    max_attempts=s.llm_max_attempts,
                    max_concepts=s.max_concepts,
                )
                if backend is not None
                else None,
                concept_writer=ConceptIndexWriter(
                    concept_store,
                    concurrency=s.enrichment_concurrency,
                    timeout=s.enrichment_timeout_seconds,
                )
                if concept_store is not None
                else None,
                relationship_builder=RelationshipBuilder(
                    graph,
                    embedder=self.embeddings,
                    similarity_threshold=s.relationship_similarity_threshold,
                    candidate_limit=s.relationship_candidate_limit,
                    concurrency=s.enrichment_concurrency,
                    timeout=s.enrichment_timeout_seconds,
                )
                if graph is not None
                else None,
            )
            logger.info(
                "pipeline_created",
                analysis=backend is not None,
                concepts=concept_store is not None,
                graph=graph is not None,
            )
        return self._pipeline

    @property
    def search(self) -> "MemorySearch":
        """Get the intelligent search facade."""
        if self._search is None:
            from mempipe.pipeline.search import MemorySearch

            self._search = MemorySearch(
                self.record_store,
                concept_store=self.concept_store,
                graph_store=self.graph,
                reranker=self.reranker,
            )
        return self._search

    async def _connect_optional(self, name: str, connect) -> None:
        try:
            await connect()
            logger.info("backend_connected", backend=name)
        except Exception as e:
            self._disabled.add(name)
            logger.warning(
                "backend_disabled",
                backend=name,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def initialize(self) -> None:
        """
        Connect all configured services.

        Call this at application startup.

        Raises:
            InitializationError: If the record store fails to initialize.
        """
        if self._initialized:
            logger.warning("container_already_initialized")
            return

        logger.info("container_initializing")

        try:
            await self.record_store.connect()
        except InitializationError:
            raise
        except Exception as e:
            logger.error(
                "container_initialization_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise InitializationError(
                "RecordStore",
                f"Failed to initialize record store: {e}",
            )

        graph = self.graph
        if graph is not None:
            await self._connect_optional("graph", graph.connect)

        concept_store = self.concept_store
        if concept_store is not None:

            async def _connect_pinecone() -> None:
                # Index creation polls readiness with blocking sleeps
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, concept_store.connect)
                await loop.run_in_executor(None, concept_store.ensure_index)

            await self._connect_optional("concepts", _connect_pinecone)

        from mempipe.storage.recency import create_recency_cache

        self._recency = await create_recency_cache(self._settings)

        self._initialized = True
        logger.info(
            "container_initialized",
            record_store=self.record_store.name,
            disabled=sorted(self._disabled),
        )

    async def shutdown(self) -> None:
        """
        Shutdown all services gracefully.

        Call this at application shutdown.
        """
        logger.info("container_shutting_down")

        closers = [
            ("graph", self._graph),
            ("recency", self._recency),
            ("record_store", self._record_store),
        ]
        for name, service in closers:
            if service is None:
                continue
            try:
                await service.close()
                logger.info("service_closed", service=name)
            except Exception as e:
                logger.error("service_close_error", service=name, error=str(e))

        # Pinecone and Cohere don't need explicit close

        self._pipeline = None
        self._search = None
        self._initialized = False
        logger.info("container_shutdown_complete")

    @property
    def is_initialized(self) -> bool:
        """Check if container has been initialized."""
        return self._initialized

    @property
    def disabled_backends(self) -> frozenset[str]:
        return frozenset(self._disabled)


# Global container instance for convenience
# Prefer passing container explicitly via dependency injection
_container: DependencyContainer | None = None


def get_container() -> DependencyContainer:
    """
    Get the global container instance.

    Creates one if it doesn't exist. Prefer passing container
    explicitly for better testability.
    """
    global _container
    if _container is None:
        _container = DependencyContainer()
    return _container


async def initialize_container() -> DependencyContainer:
    """
    Initialize and return the global container.

    Convenience function for application startup.
    """
    container = get_container()
    await container.initialize()
    return container


async def shutdown_container() -> None:
    """
    Shutdown the global container.

    Convenience function for application shutdown.
    """
    global _container
    if _container is not None:
        await _container.shutdown()
        _container = None
