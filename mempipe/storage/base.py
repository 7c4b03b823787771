"""Record store contract shared by every canonical backend.

The pipeline is written once against RecordStore; SQLite and Supabase are
interchangeable implementations injected by the container.
"""

from typing import Optional, Protocol, runtime_checkable

from mempipe.models import CanonicalMemoryRecord, MemoryId


BASIC_SEARCH_LIMIT = 50
CATEGORY_SEARCH_LIMIT = 20


@runtime_checkable
class RecordStore(Protocol):
    """Canonical persistence for memory records.

    Implementations raise StoreUnavailable when the backend cannot be
    reached. Missing ids are reported as None/False, never raised.
    """

    name: str

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def insert(
        self,
        category: str,
        topic: str,
        content: str,
        date: str,
        created_at: Optional[str] = None,
    ) -> MemoryId:
        """Persist a record; created_at defaults to the current UTC time."""
        ...

    async def get(self, memory_id: MemoryId) -> Optional[CanonicalMemoryRecord]: ...

    async def delete(self, memory_id: MemoryId) -> bool: ...

    async def move(self, memory_id: MemoryId, new_category: str) -> bool: ...

    async def search_basic(
        self, query: str, categories: Optional[list[str]] = None
    ) -> list[CanonicalMemoryRecord]: ...

    async def search_by_category(
        self, category: str, limit: int = CATEGORY_SEARCH_LIMIT
    ) -> list[CanonicalMemoryRecord]: ...

    async def list_categories(self) -> dict[str, int]: ...

    async def health_check(self) -> bool: ...
