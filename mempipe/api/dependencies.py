"""FastAPI dependency injection providers.

This module provides dependency functions for injecting services into route handlers.
"""

from typing import Optional

from mempipe.core.container import DependencyContainer
from mempipe.pipeline.orchestrator import MemoryPipeline
from mempipe.pipeline.search import MemorySearch

# Global container set by the application lifespan
_container: Optional[DependencyContainer] = None


def get_container() -> DependencyContainer:
    """
    Get the initialized dependency container.

    Raises:
        RuntimeError: If the container has not been initialized.
    """
    if _container is None:
        raise RuntimeError(
            "Container not initialized. Ensure the application startup event has run."
        )
    return _container


def peek_container() -> Optional[DependencyContainer]:
    """Return the current container without raising."""
    return _container


def set_container(container: DependencyContainer) -> None:
    """
    Set the global container instance.

    Called during application startup, or by tests before the app starts.
    """
    global _container
    _container = container


def get_pipeline() -> MemoryPipeline:
    return get_container().pipeline


def get_search() -> MemorySearch:
    return get_container().search


def reset_dependencies() -> None:
    """
    Reset all global dependency instances.

    Useful for testing or application shutdown.
    """
    global _container
    _container = None
