"""
Advanced Memory Pipeline - canonical storage with selective semantic enrichment.

This package contains the modules of the memory pipeline:
- pipeline: Ingestion gate, semantic analyzer, significance and routing policies, orchestrator
- storage: Canonical record stores (SQLite, Supabase) and the recency cache
- knowledge: Concept index (Pinecone), relationship graph (Neo4j), embeddings (Cohere)
- llm: Anthropic analysis backend
- api: FastAPI application and endpoints
- config: Pydantic settings
- core: Exceptions, circuit breakers, dependency container
- monitoring: Prometheus metrics
- models: Pydantic data models
"""

__version__ = "0.1.0"
