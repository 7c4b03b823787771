"""
Knowledge Infrastructure.

Enrichment layer for significant memories:

- base: ConceptStore, GraphStore and Embedder contracts
- concept_index: ConceptIndexWriter, one vector entry per extracted concept
- relationships: RelationshipBuilder, memory nodes and derived edges
- pinecone_client: Pinecone-backed concept store
- neo4j_client: Neo4j-backed memory graph
- cohere_embeddings: Cohere embed-v3 vectors for concepts, queries and nodes

Example:
    from mempipe.knowledge import ConceptIndexWriter, RelationshipBuilder

    writer = ConceptIndexWriter(concept_store, concurrency=4)
    result = await writer.store(record, analysis.concepts)

    builder = RelationshipBuilder(graph_store, embedder=embeddings)
    link = await builder.link(record, analysis)
"""

from mempipe.knowledge.base import ConceptStore, Embedder, GraphStore
from mempipe.knowledge.concept_index import ConceptIndexWriter, concept_entry_id
from mempipe.knowledge.relationships import (
    RelationshipBuilder,
    classify_edge,
    overlap_score,
)
from mempipe.knowledge.cohere_embeddings import CohereEmbeddingsService
from mempipe.knowledge.neo4j_client import (
    Neo4jGraphStore,
    RELATIONSHIP_TYPES,
    validate_relationship_type,
)
from mempipe.knowledge.pinecone_client import PineconeConceptStore

__all__ = [
    # Contracts
    "ConceptStore",
    "Embedder",
    "GraphStore",
    # Writers
    "ConceptIndexWriter",
    "concept_entry_id",
    "RelationshipBuilder",
    "classify_edge",
    "overlap_score",
    # Backends
    "CohereEmbeddingsService",
    "Neo4jGraphStore",
    "RELATIONSHIP_TYPES",
    "validate_relationship_type",
    "PineconeConceptStore",
]
