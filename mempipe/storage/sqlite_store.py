"""
SQLite record store.

Local canonical backend. The sqlite3 module is synchronous, so every
statement runs in the default executor behind a lock, mirroring how the
Pinecone and Cohere clients push their sync SDKs off the event loop.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from typing import Any, Callable, Optional, TypeVar

import structlog

from mempipe.core.exceptions import StoreUnavailable
from mempipe.models import CanonicalMemoryRecord, MemoryId, utc_now_iso
from mempipe.monitoring.metrics import track_store_operation
from mempipe.storage.base import BASIC_SEARCH_LIMIT, CATEGORY_SEARCH_LIMIT

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    category TEXT NOT NULL,
    topic TEXT NOT NULL,
    content TEXT NOT NULL,
    date TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_memories_category ON memories(category);
CREATE INDEX IF NOT EXISTS idx_memories_date ON memories(date);
CREATE INDEX IF NOT EXISTS idx_memories_created_at ON memories(created_at);
"""

_COLUMNS = "id, category, topic, content, date, created_at"


def _to_int_id(memory_id: MemoryId) -> Optional[int]:
    try:
        return int(memory_id)
    except (TypeError, ValueError):
        return None


class SQLiteRecordStore:
    """
    Canonical memory store on a single SQLite file.

    Usage:
        store = SQLiteRecordStore("memories.db")
        await store.connect()
        memory_id = await store.insert("projekte", "Topic", "Content", "2024-05-01")
    """

    name = "sqlite"

    def __init__(self, db_path: str = "memories.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    @property
    def conn(self) -> sqlite3.Connection:
        """Get the connection, raising if not connected."""
        if self._conn is None:
            raise StoreUnavailable(self.name, "SQLite store not connected. Call connect() first.")
        return self._conn

    async def connect(self) -> None:
        """Open the database file and create the schema."""
        if self._conn is not None:
            return

        def _open() -> sqlite3.Connection:
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.executescript(SCHEMA)
            conn.commit()
            return conn

        try:
            loop = asyncio.get_running_loop()
            self._conn = await loop.run_in_executor(None, _open)
        except sqlite3.Error as e:
            logger.error("sqlite_connect_failed", path=self._db_path, error=str(e))
            raise StoreUnavailable(
                self.name,
                f"Failed to open SQLite database: {e}",
                {"path": self._db_path},
            )
        logger.info("sqlite_connected", path=self._db_path)

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("sqlite_disconnected", path=self._db_path)

    async def _run(self, operation: str, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Execute fn(conn) in the executor, mapping driver errors."""
        conn = self.conn

        def _locked() -> T:
            with self._lock:
                return fn(conn)

        with track_store_operation(self.name, operation):
            try:
                loop = asyncio.get_running_loop()
                return await loop.run_in_executor(None, _locked)
            except sqlite3.Error as e:
                logger.error("sqlite_operation_failed", operation=operation, error=str(e))
                raise StoreUnavailable(
                    self.name,
                    f"SQLite {operation} failed: {e}",
                    {"operation": operation},
                )

    @staticmethod
    def _to_record(row: sqlite3.Row) -> CanonicalMemoryRecord:
        return CanonicalMemoryRecord(**dict(row))

    async def insert(
        self,
        category: str,
        topic: str,
        content: str,
        date: str,
        created_at: Optional[str] = None,
    ) -> int:
        now = created_at or utc_now_iso()

        def _insert(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                "INSERT INTO memories (category, topic, content, date, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (category, topic, content, date, now, now),
            )
            conn.commit()
            return int(cursor.lastrowid)

        memory_id = await self._run("insert", _insert)
        logger.debug("sqlite_memory_inserted", memory_id=memory_id, category=category)
        return memory_id

    async def get(self, memory_id: MemoryId) -> Optional[CanonicalMemoryRecord]:
        row_id = _to_int_id(memory_id)
        if row_id is None:
            return None

        def _get(conn: sqlite3.Connection) -> Optional[sqlite3.Row]:
            return conn.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE id = ?", (row_id,)
            ).fetchone()

        row = await self._run("get", _get)
        return self._to_record(row) if row else None

    async def delete(self, memory_id: MemoryId) -> bool:
        row_id = _to_int_id(memory_id)
        if row_id is None:
            return False

        def _delete(conn: sqlite3.Connection) -> int:
            cursor = conn.execute("DELETE FROM memories WHERE id = ?", (row_id,))
            conn.commit()
            return cursor.rowcount

        return await self._run("delete", _delete) > 0

    async def move(self, memory_id: MemoryId, new_category: str) -> bool:
        row_id = _to_int_id(memory_id)
        if row_id is None:
            return False

        def _move(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                "UPDATE memories SET category = ?, updated_at = ? WHERE id = ?",
                (new_category, utc_now_iso(), row_id),
            )
            conn.commit()
            return cursor.rowcount

        return await self._run("move", _move) > 0

    async def search_basic(
        self, query: str, categories: Optional[list[str]] = None
    ) -> list[CanonicalMemoryRecord]:
        pattern = f"%{query}%"
        sql = f"SELECT {_COLUMNS} FROM memories WHERE (content LIKE ? OR topic LIKE ?)"
        params: list[Any] = [pattern, pattern]
        if categories:
            sql += f" AND category IN ({', '.join('?' for _ in categories)})"
            params.extend(categories)
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(BASIC_SEARCH_LIMIT)

        rows = await self._run("search_basic", lambda conn: conn.execute(sql, params).fetchall())
        return [self._to_record(row) for row in rows]

    async def search_by_category(
        self, category: str, limit: int = CATEGORY_SEARCH_LIMIT
    ) -> list[CanonicalMemoryRecord]:
        def _search(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE category = ? "
                "ORDER BY created_at DESC, id DESC LIMIT ?",
                (category, limit),
            ).fetchall()

        rows = await self._run("search_by_category", _search)
        return [self._to_record(row) for row in rows]

    async def list_categories(self) -> dict[str, int]:
        def _counts(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(
                "SELECT category, COUNT(*) AS count FROM memories "
                "GROUP BY category ORDER BY count DESC"
            ).fetchall()

        rows = await self._run("list_categories", _counts)
        return {row["category"]: row["count"] for row in rows}

    async def health_check(self) -> bool:
        try:
            await self._run("health_check", lambda conn: conn.execute("SELECT 1").fetchone())
            return True
        except StoreUnavailable:
            return False
