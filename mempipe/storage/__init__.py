"""
Canonical record stores and the recency cache.

- base: RecordStore contract consumed by the pipeline
- sqlite_store: Local SQLite backend
- supabase_store: Hosted Supabase backend
- recency: Bounded FIFO of recent memories (Redis or in-memory)
"""

from mempipe.storage.base import RecordStore
from mempipe.storage.sqlite_store import SQLiteRecordStore
from mempipe.storage.recency import (
    RecencyCache,
    InMemoryRecencyCache,
    RedisRecencyCache,
    create_recency_cache,
)

__all__ = [
    "RecordStore",
    "SQLiteRecordStore",
    "RecencyCache",
    "InMemoryRecencyCache",
    "RedisRecencyCache",
    "create_recency_cache",
]
