"""Source repositories for the records that get indexed."""

from novel_search.sources.base import (
    Chapter,
    ChapterRepository,
    Knowledge,
    KnowledgeRepository,
    Plot,
)
from novel_search.sources.sqlite import (
    SQLiteChapterRepository,
    SQLiteKnowledgeRepository,
    SourceDatabase,
)

__all__ = [
    "Chapter",
    "ChapterRepository",
    "Knowledge",
    "KnowledgeRepository",
    "Plot",
    "SQLiteChapterRepository",
    "SQLiteKnowledgeRepository",
    "SourceDatabase",
]
