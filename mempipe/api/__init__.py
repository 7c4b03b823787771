"""
Memory Pipeline FastAPI Application.

This module contains the REST API for the memory pipeline:

- main: FastAPI application entry point and configuration
- routes/: API endpoint definitions organized by domain
- models: Pydantic request/response models
- dependencies: FastAPI dependency injection providers

API Structure:
- /health - Health check and readiness probes
- /metrics - Prometheus metrics
- /api/v1/memories - Ingestion, lifecycle and search
- /api/v1/graph - Relationship graph statistics

Example:
    from mempipe.api.main import app

    # Run with: uvicorn mempipe.api.main:app --reload
"""

from mempipe.api.main import app

__all__ = ["app"]
