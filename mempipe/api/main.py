"""Memory Pipeline HTTP application.

Wires the FastAPI app: container lifecycle, middleware, the Prometheus
scrape endpoint, exception mapping and the versioned memory routes.

Error mapping:
    ValidationError          400  memory rejected by the ingestion gate
    RequestValidationError   422  malformed request body or query
    StoreUnavailable         503  canonical store unreachable, nothing persisted
    anything else            500

Usage:
    uvicorn mempipe.api.main:app --reload
    python -m mempipe.api.main
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mempipe.api.dependencies import peek_container, reset_dependencies, set_container
from mempipe.api.middleware import APIKeyMiddleware, MetricsMiddleware
from mempipe.api.models import ErrorResponse, ValidationErrorDetail, ValidationErrorResponse
from mempipe.api.routes.graph import router as graph_router
from mempipe.api.routes.health import API_VERSION, router as health_router, set_server_start_time
from mempipe.api.routes.memories import router as memories_router
from mempipe.config.settings import get_settings
from mempipe.core.container import DependencyContainer
from mempipe.core.exceptions import StoreUnavailable, ValidationError
from mempipe.monitoring.metrics import get_metrics_app

logger = structlog.get_logger(__name__)

API_TITLE = "Memory Pipeline API"
API_DESCRIPTION = """
Stores every accepted memory canonically, then enriches the significant ones
with LLM-extracted concepts (Pinecone) and relationships (Neo4j).

* Enrichment outages degrade a result, they never lose a memory.
* `X-API-Key` is required on all non-probe routes when `API_KEY_ENABLED=true`.
"""


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build and connect the container on startup; close it on shutdown."""
    logger.info("application_starting")
    set_server_start_time()

    # A container injected beforehand (tests) is used as is
    container = peek_container()
    owns_container = container is None
    if owns_container:
        container = DependencyContainer(get_settings())
        await container.initialize()
        set_container(container)

    logger.info("application_started", disabled_backends=sorted(container.disabled_backends))

    yield

    logger.info("application_stopping")
    if owns_container:
        try:
            await container.shutdown()
        except Exception as e:
            logger.error("container_shutdown_error", error=str(e))
        reset_dependencies()
    logger.info("application_stopped")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Health", "description": "Liveness, readiness and backend status"},
        {"name": "Memories", "description": "Ingestion, lifecycle and retrieval"},
        {"name": "Graph", "description": "Relationship graph statistics"},
    ],
)

_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_allowed_origins,
    allow_credentials=_settings.cors_allow_credentials,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-API-Key", "Accept"],
)
app.add_middleware(APIKeyMiddleware)
app.add_middleware(MetricsMiddleware)

app.mount("/metrics", get_metrics_app())


# =============================================================================
# Exception Handlers
# =============================================================================


def _error(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    detail: Optional[Any] = None,
) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, detail=detail, path=request.url.path)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(ValidationError)
async def memory_validation_exception_handler(
    request: Request, exc: ValidationError
) -> JSONResponse:
    return _error(
        request,
        status.HTTP_400_BAD_REQUEST,
        "validation_error",
        exc.message,
        {"field": exc.field},
    )


@app.exception_handler(StoreUnavailable)
async def store_unavailable_exception_handler(
    request: Request, exc: StoreUnavailable
) -> JSONResponse:
    logger.error("record_store_unavailable", path=request.url.path, error=str(exc))
    return _error(request, status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable", exc.message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    response = ValidationErrorResponse(
        errors=[
            ValidationErrorDetail(
                field=".".join(str(part) for part in error["loc"]),
                message=error["msg"],
                value=error.get("input"),
            )
            for error in exc.errors()
        ],
        timestamp=datetime.now(timezone.utc),
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=response.model_dump(mode="json"),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return _error(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "internal_server_error",
        "An unexpected error occurred",
        str(exc) if get_settings().debug else None,
    )


# =============================================================================
# Routes
# =============================================================================

app.include_router(health_router)

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(memories_router)
api_v1_router.include_router(graph_router)
app.include_router(api_v1_router)


@app.get("/", include_in_schema=False)
async def root() -> dict:
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health",
        "memories": "/api/v1/memories",
        "graph": "/api/v1/graph/stats",
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "mempipe.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )
