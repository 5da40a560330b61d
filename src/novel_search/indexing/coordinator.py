"""Keeps the vector store in sync with mutable source entities."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from functools import partial
from typing import Any

import anyio

from novel_search.concurrency import RequestCoalescer
from novel_search.errors import EntityNotFound, InvalidQuery, ReindexCancelled
from novel_search.indexing.sources import EntityGroup, EntitySource
from novel_search.search.engine import SearchEngine
from novel_search.vector.base import EntityType, VectorDocument

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexFailure:
    """An entity that could not be indexed during a reindex."""

    entity_type: EntityType
    entity_id: str
    error: str


@dataclass(slots=True)
class ReindexReport:
    """Outcome of a project reindex."""

    project_id: int
    cleared: int = 0
    indexed: int = 0
    skipped: int = 0
    failures: list[IndexFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.failures and not self.cancelled

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        return {
            "project_id": self.project_id,
            "cleared": self.cleared,
            "indexed": self.indexed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "failures": [
                {
                    "entity_type": failure.entity_type.value,
                    "entity_id": failure.entity_id,
                    "error": failure.error,
                }
                for failure in self.failures
            ],
        }


class IndexingCoordinator:
    """Indexes entities on demand and rebuilds project indexes.

    At most one indexing operation runs per entity key at a time: a request
    for a key already in flight joins it and receives the same outcome.
    """

    def __init__(self, engine: SearchEngine, sources: Sequence[EntitySource]) -> None:
        """Initialize the coordinator.

        Args:
            engine: Search engine whose write path embeds and upserts documents.
            sources: One source per indexable entity type. During a reindex the
                sources are processed concurrently.
        """
        self._engine = engine
        self._sources: dict[EntityType, EntitySource] = {}
        for source in sources:
            if source.entity_type in self._sources:
                raise ValueError(
                    f"Duplicate source for entity type {source.entity_type.value}"
                )
            self._sources[source.entity_type] = source
        self._calls: RequestCoalescer[str, VectorDocument | None] = RequestCoalescer()

    @property
    def entity_types(self) -> list[EntityType]:
        return list(self._sources)

    def is_indexing(self, entity_type: EntityType, entity_id: str) -> bool:
        """Return True if the entity is being indexed right now."""
        return self._calls.in_flight(self._key(entity_type, entity_id))

    async def index_entity(
        self, entity_type: EntityType, entity_id: str
    ) -> VectorDocument | None:
        """Index (or re-index) one entity.

        Returns:
            The stored document, or None if the entity no longer exists.

        Raises:
            InvalidQuery: If no source handles entity_type.
            EmbeddingUnavailable: If the entity text cannot be embedded.
            StoreWriteError: If the document cannot be persisted.
        """
        source = self._source_for(entity_type)
        entity_id = str(entity_id)
        return await self._calls.run(
            self._key(entity_type, entity_id),
            partial(self._perform_indexing, source, entity_id),
        )

    async def index_knowledge(self, knowledge_id: str) -> VectorDocument | None:
        return await self.index_entity(EntityType.KNOWLEDGE, knowledge_id)

    async def index_chapter(self, chapter_id: str) -> VectorDocument | None:
        return await self.index_entity(EntityType.CHAPTER, chapter_id)

    async def reindex_project(
        self,
        project_id: int,
        cancel_event: anyio.Event | None = None,
    ) -> ReindexReport:
        """Rebuild a project's index from scratch.

        Existing documents are cleared, then every entity of every source is
        indexed in fixed-size batches: entities within a batch run
        concurrently, batches run one after another. A failing entity is
        logged and recorded in the report without stopping its batch. A
        failure part way leaves a partial index; running the reindex again
        converges because it starts with a full clear.

        Args:
            project_id: Project to rebuild.
            cancel_event: Optional signal checked between batches.

        Raises:
            ReindexCancelled: If cancel_event was set before all batches ran.
        """
        logger.info("Starting full reindex for project: %s", project_id)
        plans = [
            (source, await source.project_groups(project_id))
            for source in self._sources.values()
        ]

        report = ReindexReport(project_id=project_id)
        report.cleared = await self._engine.clear_project(project_id)

        async with anyio.create_task_group() as task_group:
            for source, groups in plans:
                task_group.start_soon(
                    self._index_groups, source, groups, report, cancel_event
                )

        if report.cancelled:
            logger.warning(
                "Reindex of project %s cancelled after %d entities",
                project_id,
                report.indexed,
            )
            raise ReindexCancelled(project_id, report.indexed)

        if report.failures:
            logger.warning(
                "Completed reindex for project %s with %d failures (%d indexed)",
                project_id,
                len(report.failures),
                report.indexed,
            )
        else:
            logger.info(
                "Completed full reindex for project %s (%d indexed)",
                project_id,
                report.indexed,
            )
        return report

    async def remove_entity_index(
        self, entity_type: EntityType, entity_id: str, project_id: int
    ) -> bool:
        """Remove an entity's document. Missing documents are not an error."""
        removed = await self._engine.remove_document(entity_type, str(entity_id), project_id)
        if removed:
            logger.info("Removed index for %s/%s", entity_type.value, entity_id)
        return removed

    async def remove_knowledge_index(self, knowledge_id: str, project_id: int) -> bool:
        return await self.remove_entity_index(EntityType.KNOWLEDGE, knowledge_id, project_id)

    async def remove_chapter_index(self, chapter_id: str, project_id: int) -> bool:
        return await self.remove_entity_index(EntityType.CHAPTER, chapter_id, project_id)

    async def _perform_indexing(
        self, source: EntitySource, entity_id: str
    ) -> VectorDocument | None:
        try:
            entity = await source.load(entity_id)
        except EntityNotFound as exc:
            logger.warning("%s; nothing to index", exc)
            return None

        try:
            return await self._engine.index_document(
                entity.entity_type,
                entity.entity_id,
                entity.project_id,
                entity.content,
                entity.metadata,
            )
        except Exception:
            logger.exception("Failed to index %s %s", source.entity_type.value, entity_id)
            raise

    async def _index_groups(
        self,
        source: EntitySource,
        groups: list[EntityGroup],
        report: ReindexReport,
        cancel_event: anyio.Event | None,
    ) -> None:
        batch_size = source.batch_size
        for group in groups:
            total = len(group.entity_ids)
            for start in range(0, total, batch_size):
                if report.cancelled or (cancel_event is not None and cancel_event.is_set()):
                    report.cancelled = True
                    return

                batch = group.entity_ids[start : start + batch_size]
                async with anyio.create_task_group() as task_group:
                    for entity_id in batch:
                        task_group.start_soon(
                            self._index_for_report, source.entity_type, entity_id, report
                        )
                logger.info(
                    "Indexed %d/%d %s", min(start + batch_size, total), total, group.label
                )

    async def _index_for_report(
        self, entity_type: EntityType, entity_id: str, report: ReindexReport
    ) -> None:
        try:
            document = await self.index_entity(entity_type, entity_id)
        except Exception as exc:
            report.failures.append(IndexFailure(entity_type, entity_id, str(exc)))
            return
        if document is None:
            report.skipped += 1
        else:
            report.indexed += 1

    def _source_for(self, entity_type: EntityType) -> EntitySource:
        source = self._sources.get(entity_type)
        if source is None:
            raise InvalidQuery(f"No source registered for entity type {entity_type.value}")
        return source

    @staticmethod
    def _key(entity_type: EntityType, entity_id: str) -> str:
        return f"{entity_type.value}:{entity_id}"
