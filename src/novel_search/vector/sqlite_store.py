"""SQLite-backed vector store."""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar

import anyio

from novel_search.embedding.base import vector_magnitude
from novel_search.errors import DimensionMismatchError, StoreWriteError
from novel_search.vector.base import (
    EntityType,
    VectorDocument,
    VectorStore,
    encode_vector,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MEMORY_PATH = ":memory:"

SCHEMA = """
CREATE TABLE IF NOT EXISTS vector_index (
    id TEXT PRIMARY KEY,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    project_id INTEGER NOT NULL,
    content TEXT NOT NULL,
    vector TEXT NOT NULL,
    magnitude REAL NOT NULL,
    metadata TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (entity_type, entity_id, project_id)
);

CREATE INDEX IF NOT EXISTS idx_vector_project ON vector_index(project_id);
"""

# Conflicts on the entity key update the existing row in place, so the id
# and created_at of the first insert survive every later write.
_UPSERT_SQL = """
INSERT INTO vector_index
    (id, entity_type, entity_id, project_id, content, vector, magnitude,
     metadata, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (entity_type, entity_id, project_id) DO UPDATE SET
    content = excluded.content,
    vector = excluded.vector,
    magnitude = excluded.magnitude,
    metadata = excluded.metadata,
    updated_at = excluded.updated_at
RETURNING id, created_at, updated_at
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_document_id() -> str:
    """Return a new opaque document id."""
    return f"vec_{uuid.uuid4().hex}"


class SQLiteVectorStore(VectorStore):
    """Vector store persisted in a single SQLite table.

    All statements share one connection and run in a worker thread, one at
    a time, so the event loop never blocks on disk I/O.
    """

    def __init__(
        self,
        path: str | Path = MEMORY_PATH,
        dimension: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the store. The database is opened on first use.

        Args:
            path: Database file path, or ":memory:" for a private in-memory db.
            dimension: If set, every upserted vector must have this length.
            clock: Source of write timestamps (default: current UTC time).
        """
        self._path = str(path)
        self._dimension = dimension
        self._clock = clock or _utcnow
        self._conn: sqlite3.Connection | None = None
        self._lock: anyio.Lock | None = None

    @property
    def path(self) -> str:
        return self._path

    async def upsert(
        self,
        entity_type: EntityType,
        entity_id: str,
        project_id: int,
        content: str,
        vector: Sequence[float],
        metadata: dict[str, Any] | None = None,
    ) -> VectorDocument:
        """Insert or replace the document for an entity in one statement."""
        if not vector:
            raise ValueError("Cannot store an empty vector.")
        if self._dimension is not None and len(vector) != self._dimension:
            raise DimensionMismatchError(self._dimension, len(vector))

        encoded_vector = encode_vector(vector)
        magnitude = vector_magnitude(vector)
        metadata = dict(metadata or {})
        try:
            encoded_metadata = json.dumps(metadata)
        except (TypeError, ValueError) as exc:
            raise StoreWriteError(f"Metadata is not JSON-serializable: {exc}") from exc
        timestamp = self._clock().isoformat()
        params = (
            generate_document_id(),
            entity_type.value,
            str(entity_id),
            project_id,
            content,
            encoded_vector,
            magnitude,
            encoded_metadata,
            timestamp,
            timestamp,
        )

        def _write(conn: sqlite3.Connection) -> sqlite3.Row:
            with conn:
                row = conn.execute(_UPSERT_SQL, params).fetchone()
            return row

        row = await self._write(_write, f"upsert {entity_type.value}/{entity_id}")
        return VectorDocument(
            id=row["id"],
            entity_type=entity_type,
            entity_id=str(entity_id),
            project_id=project_id,
            content=content,
            encoded_vector=encoded_vector,
            magnitude=magnitude,
            metadata=metadata,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    async def query_by_project(
        self,
        project_id: int,
        entity_types: Sequence[EntityType] | None = None,
        exclude_ids: Sequence[str] | None = None,
    ) -> list[VectorDocument]:
        """Return matching documents of a project in insertion order."""
        sql = "SELECT * FROM vector_index WHERE project_id = ?"
        params: list[Any] = [project_id]

        if entity_types:
            sql += f" AND entity_type IN ({', '.join('?' for _ in entity_types)})"
            params.extend(entity_type.value for entity_type in entity_types)

        if exclude_ids:
            sql += f" AND id NOT IN ({', '.join('?' for _ in exclude_ids)})"
            params.extend(exclude_ids)

        sql += " ORDER BY rowid"

        def _read(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(sql, params).fetchall()

        rows = await self._run(_read)
        return [self._row_to_document(row) for row in rows]

    async def get_by_entity(
        self,
        entity_type: EntityType,
        entity_id: str,
        project_id: int,
    ) -> VectorDocument | None:
        def _read(conn: sqlite3.Connection) -> sqlite3.Row | None:
            return conn.execute(
                "SELECT * FROM vector_index "
                "WHERE entity_type = ? AND entity_id = ? AND project_id = ?",
                (entity_type.value, str(entity_id), project_id),
            ).fetchone()

        row = await self._run(_read)
        return self._row_to_document(row) if row is not None else None

    async def delete_by_entity(
        self,
        entity_type: EntityType,
        entity_id: str,
        project_id: int,
    ) -> bool:
        def _delete(conn: sqlite3.Connection) -> int:
            with conn:
                cursor = conn.execute(
                    "DELETE FROM vector_index "
                    "WHERE entity_type = ? AND entity_id = ? AND project_id = ?",
                    (entity_type.value, str(entity_id), project_id),
                )
            return cursor.rowcount

        removed = await self._write(_delete, f"delete {entity_type.value}/{entity_id}")
        logger.info("Deleted vector document: %s/%s", entity_type.value, entity_id)
        return removed > 0

    async def delete_by_project(self, project_id: int) -> int:
        def _delete(conn: sqlite3.Connection) -> int:
            with conn:
                cursor = conn.execute(
                    "DELETE FROM vector_index WHERE project_id = ?", (project_id,)
                )
            return cursor.rowcount

        removed = await self._write(_delete, f"clear project {project_id}")
        logger.info("Cleared %d vector documents for project %s", removed, project_id)
        return removed

    async def count(self, project_id: int) -> int:
        def _read(conn: sqlite3.Connection) -> int:
            row = conn.execute(
                "SELECT COUNT(*) FROM vector_index WHERE project_id = ?", (project_id,)
            ).fetchone()
            return int(row[0])

        return await self._run(_read)

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn is None:
            return
        conn = self._conn
        self._conn = None
        async with self._get_lock():
            await anyio.to_thread.run_sync(conn.close)

    async def _write(
        self, func: Callable[[sqlite3.Connection], T], description: str
    ) -> T:
        try:
            return await self._run(func)
        except sqlite3.Error as exc:
            logger.error("Vector store write failed (%s): %s", description, exc)
            raise StoreWriteError(f"Failed to {description}: {exc}") from exc

    async def _run(self, func: Callable[[sqlite3.Connection], T]) -> T:
        async with self._get_lock():
            return await anyio.to_thread.run_sync(self._call, func)

    def _call(self, func: Callable[[sqlite3.Connection], T]) -> T:
        return func(self._connection())

    def _get_lock(self) -> anyio.Lock:
        if self._lock is None:
            self._lock = anyio.Lock()
        return self._lock

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            if self._path != MEMORY_PATH:
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self._path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            if self._path != MEMORY_PATH:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)
            self._conn = conn
            logger.info("Opened vector store at %s", self._path)
        return self._conn

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> VectorDocument:
        metadata = json.loads(row["metadata"]) if row["metadata"] else {}
        return VectorDocument(
            id=row["id"],
            entity_type=EntityType(row["entity_type"]),
            entity_id=row["entity_id"],
            project_id=row["project_id"],
            content=row["content"],
            encoded_vector=row["vector"],
            magnitude=row["magnitude"],
            metadata=metadata,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
