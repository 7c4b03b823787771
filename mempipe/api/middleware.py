"""HTTP middleware for the memory pipeline API.

APIKeyMiddleware guards every route except the probes, docs and /metrics
when API_KEY_ENABLED is set. MetricsMiddleware records request count and
latency labelled by route template.

Usage:
    from mempipe.api.middleware import APIKeyMiddleware, MetricsMiddleware

    app.add_middleware(APIKeyMiddleware)
    app.add_middleware(MetricsMiddleware)
"""

import secrets

import structlog
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from mempipe.config.settings import get_settings
from mempipe.monitoring.metrics import track_api_request

logger = structlog.get_logger(__name__)

METRICS_PREFIX = "/metrics"


def _reject(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Require a matching X-API-Key header on protected routes.

    Responses:
    - 401 when the header is missing or wrong
    - 500 when auth is enabled without a configured key
    """

    # Probes and documentation stay reachable without a key
    PUBLIC_PATHS = {
        "/",
        "/health",
        "/health/live",
        "/health/ready",
        "/docs",
        "/redoc",
        "/openapi.json",
    }

    def _is_public(self, path: str) -> bool:
        return path in self.PUBLIC_PATHS or path.startswith(METRICS_PREFIX)

    async def dispatch(self, request: Request, call_next):
        settings = get_settings()
        if not settings.api_key_enabled or self._is_public(request.url.path):
            return await call_next(request)

        expected = settings.api_key.get_secret_value() if settings.api_key else None
        if not expected:
            logger.error("api_key_not_configured", path=request.url.path)
            return _reject(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "API key authentication is enabled but no key is configured",
            )

        provided = request.headers.get("X-API-Key")
        if not provided:
            return _reject(status.HTTP_401_UNAUTHORIZED, "Missing X-API-Key header")

        if not secrets.compare_digest(provided, expected):
            logger.warning("api_key_rejected", path=request.url.path)
            return _reject(status.HTTP_401_UNAUTHORIZED, "Invalid API key")

        return await call_next(request)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record duration and status of every API request."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith(METRICS_PREFIX):
            return await call_next(request)

        with track_api_request(request.method, request.url.path) as ctx:
            response = await call_next(request)
            route = request.scope.get("route")
            if route is not None:
                # Templated path keeps label cardinality bounded
                ctx["endpoint"] = route.path
            ctx["status_code"] = response.status_code
        return response
