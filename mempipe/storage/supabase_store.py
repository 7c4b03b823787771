"""
Supabase record store.

Hosted canonical backend on a Postgres table with the same columns as the
SQLite schema:

    create table memories (
        id bigserial primary key,
        category text not null,
        topic text not null,
        content text not null,
        date date not null,
        created_at timestamptz not null default now(),
        updated_at timestamptz not null default now()
    );

The supabase client is synchronous; calls run in the default executor.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Callable, Optional, TypeVar

import structlog
from supabase import Client, create_client

from mempipe.core.exceptions import StoreUnavailable
from mempipe.models import CanonicalMemoryRecord, MemoryId, utc_now_iso
from mempipe.monitoring.metrics import track_store_operation
from mempipe.storage.base import BASIC_SEARCH_LIMIT, CATEGORY_SEARCH_LIMIT

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_COLUMNS = "id, category, topic, content, date, created_at"

# PostgREST filter syntax reserves these inside or=(...)
_FILTER_RESERVED = re.compile(r"[,()\"\\]")


class SupabaseRecordStore:
    """
    Canonical memory store backed by a Supabase table.

    Usage:
        store = SupabaseRecordStore(url, key)
        await store.connect()
        records = await store.search_basic("neo4j", categories=["programmieren"])
    """

    name = "supabase"

    def __init__(self, url: str, key: str, table: str = "memories") -> None:
        self._url = url
        self._key = key
        self._table = table
        self._client: Client | None = None

    @property
    def client(self) -> Client:
        """Get the Supabase client, raising if not connected."""
        if self._client is None:
            raise StoreUnavailable(self.name, "Supabase store not connected. Call connect() first.")
        return self._client

    async def connect(self) -> None:
        if self._client is not None:
            return
        try:
            self._client = create_client(self._url, self._key)
        except Exception as e:
            logger.error("supabase_connect_failed", error=str(e))
            raise StoreUnavailable(self.name, f"Failed to create Supabase client: {e}")
        logger.info("supabase_connected", table=self._table)

    async def close(self) -> None:
        self._client = None

    async def _run(self, operation: str, fn: Callable[[], Any]) -> list[dict[str, Any]]:
        """Execute a query builder chain in the executor and return its rows."""
        with track_store_operation(self.name, operation):
            try:
                loop = asyncio.get_running_loop()
                response = await loop.run_in_executor(None, lambda: fn().execute())
            except StoreUnavailable:
                raise
            except Exception as e:
                logger.error("supabase_operation_failed", operation=operation, error=str(e))
                raise StoreUnavailable(
                    self.name,
                    f"Supabase {operation} failed: {e}",
                    {"operation": operation, "table": self._table},
                )
        return response.data or []

    def _table_ref(self):
        return self.client.table(self._table)

    async def insert(
        self,
        category: str,
        topic: str,
        content: str,
        date: str,
        created_at: Optional[str] = None,
    ) -> MemoryId:
        now = created_at or utc_now_iso()
        rows = await self._run(
            "insert",
            lambda: self._table_ref().insert(
                {
                    "category": category,
                    "topic": topic,
                    "content": content,
                    "date": date,
                    "created_at": now,
                    "updated_at": now,
                }
            ),
        )
        if not rows:
            raise StoreUnavailable(self.name, "Insert returned no row", {"table": self._table})
        memory_id = rows[0]["id"]
        logger.debug("supabase_memory_inserted", memory_id=memory_id, category=category)
        return memory_id

    async def get(self, memory_id: MemoryId) -> Optional[CanonicalMemoryRecord]:
        rows = await self._run(
            "get",
            lambda: self._table_ref().select(_COLUMNS).eq("id", memory_id).limit(1),
        )
        return CanonicalMemoryRecord(**rows[0]) if rows else None

    async def delete(self, memory_id: MemoryId) -> bool:
        rows = await self._run("delete", lambda: self._table_ref().delete().eq("id", memory_id))
        return len(rows) > 0

    async def move(self, memory_id: MemoryId, new_category: str) -> bool:
        rows = await self._run(
            "move",
            lambda: self._table_ref()
            .update({"category": new_category, "updated_at": utc_now_iso()})
            .eq("id", memory_id),
        )
        return len(rows) > 0

    async def search_basic(
        self, query: str, categories: Optional[list[str]] = None
    ) -> list[CanonicalMemoryRecord]:
        term = _FILTER_RESERVED.sub(" ", query).strip()

        def _build():
            builder = self._table_ref().select(_COLUMNS)
            if term:
                builder = builder.or_(f"content.ilike.%{term}%,topic.ilike.%{term}%")
            if categories:
                builder = builder.in_("category", categories)
            return builder.order("created_at", desc=True).limit(BASIC_SEARCH_LIMIT)

        rows = await self._run("search_basic", _build)
        return [CanonicalMemoryRecord(**row) for row in rows]

    async def search_by_category(
        self, category: str, limit: int = CATEGORY_SEARCH_LIMIT
    ) -> list[CanonicalMemoryRecord]:
        rows = await self._run(
            "search_by_category",
            lambda: self._table_ref()
            .select(_COLUMNS)
            .eq("category", category)
            .order("created_at", desc=True)
            .limit(limit),
        )
        return [CanonicalMemoryRecord(**row) for row in rows]

    async def list_categories(self) -> dict[str, int]:
        rows = await self._run("list_categories", lambda: self._table_ref().select("category"))
        counts: dict[str, int] = {}
        for row in rows:
            counts[row["category"]] = counts.get(row["category"], 0) + 1
        return dict(sorted(counts.items(), key=lambda item: item[1], reverse=True))

    async def health_check(self) -> bool:
        try:
            await self._run("health_check", lambda: self._table_ref().select("id").limit(1))
            return True
        except StoreUnavailable:
            return False
