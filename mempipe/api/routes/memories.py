"""Memory endpoints for the memory pipeline API.

Ingestion, lifecycle (get, delete, move) and retrieval over the pipeline.
Pipeline errors are mapped to HTTP status codes by the application's
exception handlers: ValidationError → 400, StoreUnavailable → 503.
"""

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from mempipe.api.dependencies import get_pipeline, get_search
from mempipe.api.models import (
    AdvancedMemoryResponse,
    CategoryCountsResponse,
    ConceptEntry,
    DeleteResponse,
    ErrorResponse,
    GraphSearchResponse,
    MemoryCreate,
    MoveRequest,
    MoveResponse,
    RelatedMemory,
    SearchResponse,
    SearchResult,
)
from mempipe.core.exceptions import KnowledgeStoreQueryError
from mempipe.knowledge.neo4j_client import MAX_TRAVERSAL_DEPTH, validate_relationship_type
from mempipe.models import CanonicalMemoryRecord, PipelineResult, RecencyEntry
from mempipe.pipeline.orchestrator import MemoryPipeline
from mempipe.pipeline.search import MemorySearch
from mempipe.storage.base import CATEGORY_SEARCH_LIMIT

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/memories", tags=["Memories"])


def _related_memory(item: dict[str, Any]) -> RelatedMemory:
    node = item["node"]
    return RelatedMemory(
        memory_id=str(node["id"]),
        category=node["category"],
        topic=node["topic"],
        content=node["content"],
        date=node["date"],
        distance=item["distance"],
        relationship_types=item.get("relationship_types") or [],
    )


@router.post(
    "",
    response_model=PipelineResult,
    status_code=201,
    summary="Ingest a memory",
    description="Run a memory through the pipeline: validate, analyze, store and enrich.",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid category, topic or content"},
        503: {"model": ErrorResponse, "description": "Record store unavailable"},
    },
)
async def create_memory(
    memory: MemoryCreate,
    pipeline: MemoryPipeline = Depends(get_pipeline),
) -> PipelineResult:
    """
    Ingest one memory.

    The memory is always stored canonically once accepted. Concept and
    graph enrichment only run for significant memories, and their failures
    are reported in `errors` instead of failing the request.
    """
    return await pipeline.execute_advanced_pipeline(
        memory.category,
        memory.topic,
        memory.content,
        force_relationships=memory.force_relationships,
    )


@router.get(
    "/search",
    response_model=list[CanonicalMemoryRecord],
    summary="Substring search",
)
async def search_memories(
    q: str = Query(..., min_length=1, description="Substring matched against topic and content"),
    categories: Optional[list[str]] = Query(None, description="Restrict to these categories"),
    pipeline: MemoryPipeline = Depends(get_pipeline),
) -> list[CanonicalMemoryRecord]:
    return await pipeline.search_basic(q, categories)


@router.get(
    "/search/intelligent",
    response_model=SearchResponse,
    summary="Record + concept search",
    description=(
        "Substring and semantic concept search, merged and reranked. The llm strategy "
        "scores hits with the rerank model and falls back to text scoring without one."
    ),
)
async def intelligent_search(
    q: str = Query(..., min_length=1),
    categories: Optional[list[str]] = Query(None),
    rerank: bool = Query(True),
    strategy: str = Query("hybrid", pattern="^(hybrid|text|llm)$"),
    search: MemorySearch = Depends(get_search),
) -> SearchResponse:
    hits = await search.search(q, categories=categories, rerank=rerank, strategy=strategy)
    return SearchResponse(
        query=q,
        results=[SearchResult(**hit) for hit in hits],
        total=len(hits),
    )


@router.get(
    "/search/graph",
    response_model=GraphSearchResponse,
    summary="Graph-enhanced search",
    description=(
        "Record, concept and graph search. The best hits are expanded through the "
        "relationship graph and connected memories rank higher."
    ),
)
async def graph_search(
    q: str = Query(..., min_length=1),
    categories: Optional[list[str]] = Query(None),
    include_related: bool = Query(True),
    max_depth: int = Query(2, ge=1, le=MAX_TRAVERSAL_DEPTH),
    search: MemorySearch = Depends(get_search),
) -> GraphSearchResponse:
    result = await search.search_with_graph(
        q, categories=categories, include_related=include_related, max_depth=max_depth
    )
    return GraphSearchResponse(
        query=q,
        results=[SearchResult(**hit) for hit in result["results"]],
        total=len(result["results"]),
        sources=result["sources"],
        relationships=result["relationships"],
        related_memories=result["related_memories"],
        relationship_depth=result["relationship_depth"],
    )


@router.get(
    "/recent",
    response_model=list[RecencyEntry],
    summary="Recently ingested memories",
)
async def recent_memories(
    limit: Optional[int] = Query(None, ge=1),
    pipeline: MemoryPipeline = Depends(get_pipeline),
) -> list[RecencyEntry]:
    return await pipeline.recent_memories(limit)


@router.get(
    "/categories",
    response_model=CategoryCountsResponse,
    summary="Memory counts per category",
)
async def list_categories(
    pipeline: MemoryPipeline = Depends(get_pipeline),
) -> CategoryCountsResponse:
    counts = await pipeline.list_categories()
    return CategoryCountsResponse(categories=counts, total=sum(counts.values()))


@router.get(
    "/category/{category}",
    response_model=list[CanonicalMemoryRecord],
    summary="Memories of one category",
    responses={400: {"model": ErrorResponse, "description": "Unknown category"}},
)
async def memories_by_category(
    category: str,
    limit: int = Query(CATEGORY_SEARCH_LIMIT, ge=1, le=100),
    pipeline: MemoryPipeline = Depends(get_pipeline),
) -> list[CanonicalMemoryRecord]:
    if not pipeline.gate.is_allowed(category):
        raise HTTPException(status_code=400, detail=f"Unknown category: {category}")
    return await pipeline.search_by_category(category.strip().lower(), limit)


@router.get(
    "/{memory_id}",
    response_model=CanonicalMemoryRecord,
    summary="Get a memory",
    responses={404: {"model": ErrorResponse, "description": "Memory not found"}},
)
async def get_memory(
    memory_id: str,
    pipeline: MemoryPipeline = Depends(get_pipeline),
) -> CanonicalMemoryRecord:
    record = await pipeline.get_memory(memory_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Memory {memory_id} not found")
    return record


@router.delete(
    "/{memory_id}",
    response_model=DeleteResponse,
    summary="Delete a memory",
    description="Delete the canonical record and its graph node. Concept entries are kept.",
    responses={404: {"model": ErrorResponse, "description": "Memory not found"}},
)
async def delete_memory(
    memory_id: str,
    pipeline: MemoryPipeline = Depends(get_pipeline),
) -> DeleteResponse:
    logger.info("deleting_memory", memory_id=memory_id)
    if not await pipeline.delete_memory(memory_id):
        raise HTTPException(status_code=404, detail=f"Memory {memory_id} not found")
    return DeleteResponse(memory_id=memory_id, deleted=True)


@router.patch(
    "/{memory_id}/category",
    response_model=MoveResponse,
    summary="Move a memory to another category",
    responses={
        400: {"model": ErrorResponse, "description": "Unknown category"},
        404: {"model": ErrorResponse, "description": "Memory not found"},
    },
)
async def move_memory(
    memory_id: str,
    body: MoveRequest,
    pipeline: MemoryPipeline = Depends(get_pipeline),
) -> MoveResponse:
    if not pipeline.gate.is_allowed(body.category):
        raise HTTPException(status_code=400, detail=f"Unknown category: {body.category}")
    logger.info("moving_memory", memory_id=memory_id, category=body.category)
    if not await pipeline.move_memory(memory_id, body.category):
        raise HTTPException(status_code=404, detail=f"Memory {memory_id} not found")
    return MoveResponse(memory_id=memory_id, category=body.category.strip().lower(), moved=True)


@router.get(
    "/{memory_id}/related",
    response_model=list[RelatedMemory],
    summary="Related memories",
    description="Graph traversal from one memory, nearest first. Empty when the graph is disabled.",
    responses={400: {"model": ErrorResponse, "description": "Invalid relationship type"}},
)
async def related_memories(
    memory_id: str,
    types: Optional[list[str]] = Query(None, description="Relationship types to follow"),
    max_depth: int = Query(2, ge=1, le=MAX_TRAVERSAL_DEPTH),
    pipeline: MemoryPipeline = Depends(get_pipeline),
) -> list[RelatedMemory]:
    try:
        normalized = [validate_relationship_type(t.strip().upper()) for t in types or []]
    except KnowledgeStoreQueryError as e:
        raise HTTPException(status_code=400, detail=e.message)

    related = await pipeline.find_related(memory_id, normalized or None, max_depth)
    return [_related_memory(item) for item in related]


@router.get(
    "/{memory_id}/advanced",
    response_model=AdvancedMemoryResponse,
    summary="Get a memory with its enrichment",
    description=(
        "The canonical record, its concept entries, its graph neighbours and other "
        "memories with similar concepts. Sections of disabled backends are empty."
    ),
    responses={404: {"model": ErrorResponse, "description": "Memory not found"}},
)
async def advanced_memory(
    memory_id: str,
    max_depth: int = Query(2, ge=1, le=MAX_TRAVERSAL_DEPTH),
    search: MemorySearch = Depends(get_search),
) -> AdvancedMemoryResponse:
    detail = await search.retrieve_advanced(memory_id, max_depth)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Memory {memory_id} not found")
    return AdvancedMemoryResponse(
        memory=detail["memory"],
        in_graph=detail["in_graph"],
        concepts=[
            ConceptEntry(
                id=entry["id"],
                document=entry.get("document", ""),
                concept_title=(entry.get("metadata") or {}).get("concept_title"),
                similarity=max(0.0, 1.0 - float(entry.get("distance", 1.0))),
            )
            for entry in detail["concepts"]
        ],
        related_memories=[_related_memory(item) for item in detail["related_memories"]],
        similar_memories=detail["similar_memories"],
    )
