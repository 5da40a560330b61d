"""Incremental and project-wide indexing of source entities."""

from novel_search.indexing.coordinator import (
    IndexFailure,
    IndexingCoordinator,
    ReindexReport,
)
from novel_search.indexing.sources import (
    ChapterSource,
    EntityGroup,
    EntitySource,
    IndexableEntity,
    KnowledgeSource,
    build_search_text,
)

__all__ = [
    "ChapterSource",
    "EntityGroup",
    "EntitySource",
    "IndexFailure",
    "IndexableEntity",
    "IndexingCoordinator",
    "KnowledgeSource",
    "ReindexReport",
    "build_search_text",
]
