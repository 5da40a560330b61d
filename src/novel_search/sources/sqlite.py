"""Read-only repositories over the writing app's SQLite database."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import anyio

from novel_search.sources.base import (
    Chapter,
    ChapterRepository,
    Knowledge,
    KnowledgeRepository,
    Plot,
)

logger = logging.getLogger(__name__)


class SourceDatabase:
    """Shared read-only connection to the app database.

    Queries run one at a time in a worker thread.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._conn: sqlite3.Connection | None = None
        self._lock: anyio.Lock | None = None

    async def fetch_one(
        self, sql: str, params: Sequence[Any] = ()
    ) -> sqlite3.Row | None:
        rows = await self._execute(sql, params)
        return rows[0] if rows else None

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        return await self._execute(sql, params)

    async def close(self) -> None:
        if self._conn is None:
            return
        conn = self._conn
        self._conn = None
        await anyio.to_thread.run_sync(conn.close)

    async def _execute(self, sql: str, params: Sequence[Any]) -> list[sqlite3.Row]:
        if self._lock is None:
            self._lock = anyio.Lock()
        async with self._lock:
            return await anyio.to_thread.run_sync(self._query, sql, tuple(params))

    def _query(self, sql: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        return self._connection().execute(sql, params).fetchall()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            uri = f"{self._path.resolve().as_uri()}?mode=ro"
            conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            self._conn = conn
        return self._conn


def _parse_metadata(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return {"raw": raw}
    return value if isinstance(value, dict) else {"value": value}


class SQLiteKnowledgeRepository(KnowledgeRepository):
    """Knowledge notes from the ``knowledge`` table."""

    def __init__(self, database: SourceDatabase) -> None:
        self._db = database

    async def get_by_id(self, knowledge_id: str) -> Knowledge | None:
        row = await self._db.fetch_one(
            "SELECT * FROM knowledge WHERE id = ?", (knowledge_id,)
        )
        return self._row_to_knowledge(row) if row is not None else None

    async def list_by_project(self, project_id: int) -> list[Knowledge]:
        rows = await self._db.fetch_all(
            "SELECT * FROM knowledge WHERE project_id = ? ORDER BY created_at DESC",
            (project_id,),
        )
        return [self._row_to_knowledge(row) for row in rows]

    @staticmethod
    def _row_to_knowledge(row: sqlite3.Row) -> Knowledge:
        return Knowledge(
            id=str(row["id"]),
            project_id=int(row["project_id"]),
            type=row["type"],
            title=row["title"],
            content=row["content"] or "",
            metadata=_parse_metadata(row["metadata"]),
        )


class SQLiteChapterRepository(ChapterRepository):
    """Plots and chapters from the ``plots`` and ``chapters`` tables.

    Chapter bodies live outside the database as
    ``<chapters_dir>/<plot_id>/<chapter_id>.txt``; a missing file reads as
    empty text.
    """

    def __init__(self, database: SourceDatabase, chapters_dir: str | Path | None) -> None:
        self._db = database
        self._chapters_dir = Path(chapters_dir) if chapters_dir else None

    async def get_chapter(
        self, chapter_id: str, include_content: bool = False
    ) -> Chapter | None:
        row = await self._db.fetch_one(
            "SELECT * FROM chapters WHERE id = ?", (chapter_id,)
        )
        if row is None:
            return None
        chapter = self._row_to_chapter(row)
        if include_content:
            chapter.content = await self._load_content(chapter.plot_id, chapter.id)
        return chapter

    async def get_plot(self, plot_id: str) -> Plot | None:
        row = await self._db.fetch_one("SELECT * FROM plots WHERE id = ?", (plot_id,))
        return self._row_to_plot(row) if row is not None else None

    async def get_chapters_by_plot(
        self, plot_id: str, include_content: bool = False
    ) -> list[Chapter]:
        rows = await self._db.fetch_all(
            "SELECT * FROM chapters WHERE plot_id = ? ORDER BY order_index",
            (plot_id,),
        )
        chapters = [self._row_to_chapter(row) for row in rows]
        if include_content:
            for chapter in chapters:
                chapter.content = await self._load_content(plot_id, chapter.id)
        return chapters

    async def get_plots_by_project(self, project_id: int) -> list[Plot]:
        rows = await self._db.fetch_all(
            "SELECT * FROM plots WHERE project_id = ? ORDER BY order_index",
            (project_id,),
        )
        return [self._row_to_plot(row) for row in rows]

    async def _load_content(self, plot_id: str, chapter_id: str) -> str:
        if self._chapters_dir is None:
            return ""
        path = anyio.Path(self._chapters_dir / str(plot_id) / f"{chapter_id}.txt")
        if not await path.exists():
            logger.debug("No content file for chapter %s", chapter_id)
            return ""
        return await path.read_text(encoding="utf-8")

    @staticmethod
    def _row_to_plot(row: sqlite3.Row) -> Plot:
        return Plot(
            id=str(row["id"]),
            project_id=int(row["project_id"]),
            title=row["title"],
            summary=row["summary"],
            order=row["order_index"] or 0,
        )

    @staticmethod
    def _row_to_chapter(row: sqlite3.Row) -> Chapter:
        return Chapter(
            id=str(row["id"]),
            plot_id=str(row["plot_id"]),
            title=row["title"],
            summary=row["summary"],
            order=row["order_index"] or 0,
            word_count=row["word_count"] or 0,
            status=row["status"] or "draft",
        )
