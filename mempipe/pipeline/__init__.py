"""
Memory ingestion pipeline.

- gate: IngestionGate, validation and normalization
- analyzer: SemanticAnalyzer, LLM analysis with retries and a circuit breaker
- significance: SignificanceEvaluator and its policy
- router: CategoryRouter, LLM category auto-correction
- state: PipelineStage and PipelineContext
- orchestrator: MemoryPipeline, the public entry point
- search: MemorySearch, record + concept retrieval
"""

from mempipe.pipeline.gate import IngestionGate
from mempipe.pipeline.analyzer import AnalysisBackend, SemanticAnalyzer
from mempipe.pipeline.significance import (
    SignificanceEvaluator,
    SignificancePolicy,
    default_heuristic,
)
from mempipe.pipeline.router import CATEGORY_CORRECTED, CategoryRouter
from mempipe.pipeline.state import PipelineContext, PipelineStage
from mempipe.pipeline.orchestrator import MemoryPipeline
from mempipe.pipeline.search import MemorySearch, SearchHit

__all__ = [
    "IngestionGate",
    "AnalysisBackend",
    "SemanticAnalyzer",
    "SignificanceEvaluator",
    "SignificancePolicy",
    "default_heuristic",
    "CATEGORY_CORRECTED",
    "CategoryRouter",
    "PipelineContext",
    "PipelineStage",
    "MemoryPipeline",
    "MemorySearch",
    "SearchHit",
]
