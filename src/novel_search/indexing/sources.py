"""Adapters turning source records into indexable text."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from novel_search.errors import EntityNotFound
from novel_search.sources.base import ChapterRepository, KnowledgeRepository
from novel_search.vector.base import EntityType

logger = logging.getLogger(__name__)

DEFAULT_KNOWLEDGE_BATCH_SIZE = 10
DEFAULT_CHAPTER_BATCH_SIZE = 5


@dataclass(frozen=True, slots=True)
class IndexableEntity:
    """The text and ownership of one entity, ready to embed."""

    entity_type: EntityType
    entity_id: str
    project_id: int
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class EntityGroup:
    """Entity ids reindexed together, batch by batch."""

    label: str
    entity_ids: list[str]


def build_search_text(title: str | None, body: str | None) -> str:
    """Combine a title and body into the text that gets embedded."""
    return f"{title or ''}\n\n{body or ''}"


class EntitySource(ABC):
    """Loads entities of one type from their owning repository."""

    def __init__(self, batch_size: int) -> None:
        if batch_size < 1:
            raise ValueError("Batch size must be positive.")
        self._batch_size = batch_size

    @property
    def batch_size(self) -> int:
        """Number of entities indexed concurrently during a reindex."""
        return self._batch_size

    @property
    @abstractmethod
    def entity_type(self) -> EntityType:
        ...

    @abstractmethod
    async def load(self, entity_id: str) -> IndexableEntity:
        """Load an entity and build its searchable text.

        Raises:
            EntityNotFound: If the entity (or a record it depends on) is gone.
        """
        ...

    @abstractmethod
    async def project_groups(self, project_id: int) -> list[EntityGroup]:
        """List every entity of a project, grouped for batched reindexing."""
        ...


class KnowledgeSource(EntitySource):
    """Knowledge notes: title plus content."""

    def __init__(
        self,
        repository: KnowledgeRepository,
        batch_size: int = DEFAULT_KNOWLEDGE_BATCH_SIZE,
    ) -> None:
        super().__init__(batch_size)
        self._repository = repository

    @property
    def entity_type(self) -> EntityType:
        return EntityType.KNOWLEDGE

    async def load(self, entity_id: str) -> IndexableEntity:
        knowledge = await self._repository.get_by_id(entity_id)
        if knowledge is None:
            raise EntityNotFound(EntityType.KNOWLEDGE.value, entity_id)

        return IndexableEntity(
            entity_type=EntityType.KNOWLEDGE,
            entity_id=str(knowledge.id),
            project_id=knowledge.project_id,
            content=build_search_text(knowledge.title, knowledge.content),
            metadata={"type": knowledge.type, "metadata": knowledge.metadata},
        )

    async def project_groups(self, project_id: int) -> list[EntityGroup]:
        items = await self._repository.list_by_project(project_id)
        return [EntityGroup("knowledge", [str(item.id) for item in items])]


class ChapterSource(EntitySource):
    """Chapters: title plus body, owned by the project of their plot."""

    def __init__(
        self,
        repository: ChapterRepository,
        batch_size: int = DEFAULT_CHAPTER_BATCH_SIZE,
    ) -> None:
        super().__init__(batch_size)
        self._repository = repository

    @property
    def entity_type(self) -> EntityType:
        return EntityType.CHAPTER

    async def load(self, entity_id: str) -> IndexableEntity:
        chapter = await self._repository.get_chapter(entity_id, include_content=True)
        if chapter is None:
            raise EntityNotFound(EntityType.CHAPTER.value, entity_id)

        plot = await self._repository.get_plot(chapter.plot_id)
        if plot is None:
            raise EntityNotFound(EntityType.PLOT.value, chapter.plot_id)

        return IndexableEntity(
            entity_type=EntityType.CHAPTER,
            entity_id=str(chapter.id),
            project_id=plot.project_id,
            content=build_search_text(chapter.title, chapter.content),
            metadata={
                "plot_id": chapter.plot_id,
                "status": chapter.status,
                "word_count": chapter.word_count,
            },
        )

    async def project_groups(self, project_id: int) -> list[EntityGroup]:
        groups: list[EntityGroup] = []
        for plot in await self._repository.get_plots_by_project(project_id):
            chapters = await self._repository.get_chapters_by_plot(plot.id)
            groups.append(
                EntityGroup(
                    f"chapters in plot {plot.title}",
                    [str(chapter.id) for chapter in chapters],
                )
            )
        return groups
