"""Relationship graph endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from mempipe.api.dependencies import get_pipeline
from mempipe.pipeline.orchestrator import MemoryPipeline

router = APIRouter(prefix="/graph", tags=["Graph"])


@router.get(
    "/stats",
    summary="Graph statistics",
    description="Node count, edge count and edge-type histogram of the memory graph.",
)
async def graph_stats(
    pipeline: MemoryPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    return await pipeline.graph_statistics()
