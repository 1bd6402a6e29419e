"""SQLite implementation of memory and search-cache storage."""

import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from memex.config import DB_PATH
from memex.core.exceptions import DuplicateMemoryError
from memex.core.humanize import now_ms, time_ago
from memex.generative.embeddings import deserialize_embedding, serialize_embedding
from memex.storage.interface import Memory, MemoryRepository, SearchCacheEntry

EMPTY_SNAPSHOT = "0"
SQLITE_BUSY_TIMEOUT = 30.0

_MEMORY_COLUMNS = (
    "id, owner, url, canonical_url, title, content, summary, intent, "
    "embedding, created_at, source_type, save_type"
)


class SQLiteMemoryRepository(MemoryRepository):
    """SQLite-backed storage for memories and cached search responses."""

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = Path(db_path) if db_path else DB_PATH

    def _get_conn(self):
        conn = sqlite3.connect(self.db_path, timeout=SQLITE_BUSY_TIMEOUT)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Initialize the SQLite database and create tables if they don't exist."""
        os.makedirs(self.db_path.parent, exist_ok=True)
        conn = self._get_conn()
        c = conn.cursor()

        c.execute(
            """
            CREATE TABLE IF NOT EXISTS memories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                owner TEXT NOT NULL,
                url TEXT NOT NULL,
                canonical_url TEXT NOT NULL,
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                summary TEXT,
                intent TEXT,
                embedding BLOB,
                created_at INTEGER NOT NULL,
                source_type TEXT NOT NULL,
                save_type TEXT DEFAULT 'auto'
            )
        """
        )
        c.execute(
            """CREATE UNIQUE INDEX IF NOT EXISTS idx_memories_owner_canonical
            ON memories(owner, canonical_url)"""
        )
        c.execute(
            """CREATE INDEX IF NOT EXISTS idx_memories_owner_created
            ON memories(owner, created_at)"""
        )

        c.execute(
            """
            CREATE TABLE IF NOT EXISTS search_cache (
                owner TEXT NOT NULL,
                normalized_query TEXT NOT NULL,
                original_query TEXT NOT NULL,
                response_json TEXT NOT NULL,
                top_similarity REAL DEFAULT 0,
                used_ai INTEGER DEFAULT 0,
                memory_snapshot TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                PRIMARY KEY (owner, normalized_query)
            )
        """
        )

        conn.commit()
        conn.close()

    def _row_to_memory(self, row: sqlite3.Row, with_embedding: bool = True) -> Memory:
        return Memory(
            id=row["id"],
            owner=row["owner"],
            url=row["url"],
            canonical_url=row["canonical_url"],
            title=row["title"],
            content=row["content"],
            summary=row["summary"] or "",
            intent=row["intent"],
            embedding=deserialize_embedding(row["embedding"]) if with_embedding else [],
            created_at=row["created_at"],
            source_type=row["source_type"],
            save_type=row["save_type"] or "auto",
        )

    def find_by_canonical_url(self, owner: str, canonical_url: str) -> Optional[Memory]:
        conn = self._get_conn()
        c = conn.cursor()
        c.execute(
            f"SELECT {_MEMORY_COLUMNS} FROM memories WHERE owner = ? AND canonical_url = ?",
            (owner, canonical_url),
        )
        row = c.fetchone()
        conn.close()
        return self._row_to_memory(row, with_embedding=False) if row else None

    def get_memory(self, owner: str, memory_id: int) -> Optional[Memory]:
        conn = self._get_conn()
        c = conn.cursor()
        c.execute(
            f"SELECT {_MEMORY_COLUMNS} FROM memories WHERE owner = ? AND id = ?",
            (owner, memory_id),
        )
        row = c.fetchone()
        conn.close()
        return self._row_to_memory(row) if row else None

    def insert_memory(self, memory: Memory) -> int:
        """Insert a memory unless the owner already saved its canonical URL.

        The lookup and the insert share one write transaction. A duplicate
        raises ``DuplicateMemoryError`` naming the existing row.
        """
        created_at = memory.created_at or now_ms()
        conn = self._get_conn()
        try:
            c = conn.cursor()
            c.execute("BEGIN IMMEDIATE")
            c.execute(
                "SELECT id, created_at FROM memories WHERE owner = ? AND canonical_url = ?",
                (memory.owner, memory.canonical_url),
            )
            existing = c.fetchone()
            if existing:
                conn.rollback()
                raise DuplicateMemoryError(existing["id"], time_ago(existing["created_at"]))

            c.execute(
                """INSERT INTO memories
                (owner, url, canonical_url, title, content, summary, intent,
                 embedding, created_at, source_type, save_type)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    memory.owner,
                    memory.url,
                    memory.canonical_url,
                    memory.title,
                    memory.content,
                    memory.summary,
                    memory.intent,
                    serialize_embedding(memory.embedding) if memory.embedding else None,
                    created_at,
                    memory.source_type,
                    memory.save_type,
                ),
            )
            memory_id = c.lastrowid
            conn.commit()
        finally:
            conn.close()

        memory.id = memory_id
        memory.created_at = created_at
        return memory_id

    def list_memories(self, owner: str) -> List[Memory]:
        """All memories of one owner, newest first, embeddings decoded."""
        conn = self._get_conn()
        c = conn.cursor()
        c.execute(
            f"""SELECT {_MEMORY_COLUMNS} FROM memories
            WHERE owner = ? ORDER BY created_at DESC, id DESC""",
            (owner,),
        )
        rows = c.fetchall()
        conn.close()
        return [self._row_to_memory(row) for row in rows]

    def count_memories(self, owner: str) -> int:
        conn = self._get_conn()
        c = conn.cursor()
        c.execute("SELECT COUNT(*) FROM memories WHERE owner = ?", (owner,))
        count = c.fetchone()[0]
        conn.close()
        return count

    def delete_memory(self, owner: str, memory_id: int) -> bool:
        """Delete one memory; rows of other owners are never touched."""
        conn = self._get_conn()
        c = conn.cursor()
        c.execute("DELETE FROM memories WHERE owner = ? AND id = ?", (owner, memory_id))
        deleted = c.rowcount > 0
        conn.commit()
        conn.close()
        return deleted

    def memory_snapshot(self, owner: str) -> str:
        """Marker that changes whenever the owner's corpus changes.

        Built from the newest ``created_at`` plus the row count, so deleting
        an older memory also moves the marker.
        """
        conn = self._get_conn()
        c = conn.cursor()
        c.execute(
            "SELECT MAX(created_at), COUNT(*) FROM memories WHERE owner = ?",
            (owner,),
        )
        latest, count = c.fetchone()
        conn.close()
        if not count:
            return EMPTY_SNAPSHOT
        return f"{latest}:{count}"

    def get_cached_search(
        self, owner: str, normalized_query: str
    ) -> Optional[SearchCacheEntry]:
        conn = self._get_conn()
        c = conn.cursor()
        c.execute(
            """SELECT * FROM search_cache WHERE owner = ? AND normalized_query = ?""",
            (owner, normalized_query),
        )
        row = c.fetchone()
        conn.close()
        if not row:
            return None
        return SearchCacheEntry(
            owner=row["owner"],
            normalized_query=row["normalized_query"],
            original_query=row["original_query"],
            response_json=row["response_json"],
            memory_snapshot=row["memory_snapshot"],
            top_similarity=row["top_similarity"] or 0.0,
            used_ai=bool(row["used_ai"]),
            created_at=row["created_at"],
        )

    def upsert_cached_search(self, entry: SearchCacheEntry) -> None:
        created_at = entry.created_at or now_ms()
        conn = self._get_conn()
        c = conn.cursor()
        c.execute(
            """INSERT INTO search_cache
            (owner, normalized_query, original_query, response_json,
             top_similarity, used_ai, memory_snapshot, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(owner, normalized_query) DO UPDATE SET
                original_query = excluded.original_query,
                response_json = excluded.response_json,
                top_similarity = excluded.top_similarity,
                used_ai = excluded.used_ai,
                memory_snapshot = excluded.memory_snapshot,
                created_at = excluded.created_at""",
            (
                entry.owner,
                entry.normalized_query,
                entry.original_query,
                entry.response_json,
                entry.top_similarity,
                1 if entry.used_ai else 0,
                entry.memory_snapshot,
                created_at,
            ),
        )
        conn.commit()
        conn.close()

    def recent_searches(self, owner: str, limit: int) -> List[Dict[str, Any]]:
        conn = self._get_conn()
        c = conn.cursor()
        c.execute(
            """SELECT original_query, created_at FROM search_cache
            WHERE owner = ? ORDER BY created_at DESC LIMIT ?""",
            (owner, limit),
        )
        rows = c.fetchall()
        conn.close()
        return [{"query": row["original_query"], "date": row["created_at"]} for row in rows]

    def search_stats(self, owner: str) -> Dict[str, Any]:
        """Corpus size and average stored embedding length in bytes."""
        conn = self._get_conn()
        c = conn.cursor()
        c.execute(
            """SELECT COUNT(*), AVG(LENGTH(embedding)) FROM memories
            WHERE owner = ?""",
            (owner,),
        )
        total, avg_size = c.fetchone()
        conn.close()
        return {
            "total_memories": total or 0,
            "avg_embedding_size": round(avg_size or 0),
        }
