"""API route modules."""

from mempipe.api.routes.health import router as health_router
from mempipe.api.routes.memories import router as memories_router
from mempipe.api.routes.graph import router as graph_router

__all__ = [
    "health_router",
    "memories_router",
    "graph_router",
]
