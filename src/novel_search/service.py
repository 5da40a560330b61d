"""Service facade exposing the vector operations to request handlers."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import TracebackType
from typing import Any

import anyio
from pydantic import ValidationError

from novel_search.config import Settings
from novel_search.embedding.base import EmbeddingProvider
from novel_search.embedding.factory import build_embedding_provider
from novel_search.errors import InvalidQuery, ModelLoadError
from novel_search.indexing.coordinator import IndexingCoordinator, ReindexReport
from novel_search.indexing.sources import ChapterSource, EntitySource, KnowledgeSource
from novel_search.search.engine import (
    NoiseSource,
    SearchEngine,
    SearchOptions,
    SearchResult,
    uniform_noise,
)
from novel_search.sources.base import ChapterRepository, KnowledgeRepository
from novel_search.sources.sqlite import (
    SQLiteChapterRepository,
    SQLiteKnowledgeRepository,
    SourceDatabase,
)
from novel_search.vector.base import EntityType, VectorStore
from novel_search.vector.cache import VectorCache
from novel_search.vector.sqlite_store import SQLiteVectorStore

logger = logging.getLogger(__name__)

OptionsInput = SearchOptions | Mapping[str, Any] | None


@dataclass(slots=True)
class ServiceComponents:
    """Container for the components wired together by the service."""

    embedding_provider: EmbeddingProvider
    vector_store: VectorStore
    cache: VectorCache
    engine: SearchEngine
    coordinator: IndexingCoordinator


class VectorService:
    """Search, indexing and similarity operations for one process.

    Components are built from settings on entry unless injected, so tests
    and embedders can swap any of them.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        embedding_provider: EmbeddingProvider | None = None,
        vector_store: VectorStore | None = None,
        knowledge_repository: KnowledgeRepository | None = None,
        chapter_repository: ChapterRepository | None = None,
        noise: NoiseSource = uniform_noise,
    ) -> None:
        """Initialize the service.

        Args:
            settings: Application settings.
            embedding_provider: Optional provider; built from settings if omitted.
            vector_store: Optional store; a SQLite store at vector_db_path if omitted.
            knowledge_repository: Optional knowledge source repository.
            chapter_repository: Optional chapter source repository.
            noise: Noise source for perturbed search modes.
        """
        self._settings = settings
        self._provider = embedding_provider
        self._store = vector_store
        self._knowledge_repository = knowledge_repository
        self._chapter_repository = chapter_repository
        self._noise = noise
        self._source_db: SourceDatabase | None = None
        self._components: ServiceComponents | None = None

    async def __aenter__(self) -> "VectorService":
        settings = self._settings
        provider = self._provider or build_embedding_provider(settings)
        store = self._store or SQLiteVectorStore(
            settings.vector_db_path, dimension=settings.embedding_dim
        )

        if settings.source_db_path and (
            self._knowledge_repository is None or self._chapter_repository is None
        ):
            self._source_db = SourceDatabase(settings.source_db_path)
            if self._knowledge_repository is None:
                self._knowledge_repository = SQLiteKnowledgeRepository(self._source_db)
            if self._chapter_repository is None:
                self._chapter_repository = SQLiteChapterRepository(
                    self._source_db, settings.chapters_dir
                )

        sources: list[EntitySource] = []
        if self._knowledge_repository is not None:
            sources.append(
                KnowledgeSource(
                    self._knowledge_repository,
                    batch_size=settings.knowledge_batch_size,
                )
            )
        if self._chapter_repository is not None:
            sources.append(
                ChapterSource(
                    self._chapter_repository,
                    batch_size=settings.chapter_batch_size,
                )
            )

        cache = VectorCache(settings.vector_cache_size)
        engine = SearchEngine(provider, store, cache=cache, noise=self._noise)
        self._components = ServiceComponents(
            embedding_provider=provider,
            vector_store=store,
            cache=cache,
            engine=engine,
            coordinator=IndexingCoordinator(engine, sources),
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._components is not None:
            await self._components.vector_store.close()
            await self._components.embedding_provider.aclose()
            self._components = None
        if self._source_db is not None:
            await self._source_db.close()
            self._source_db = None

    @property
    def components(self) -> ServiceComponents:
        if self._components is None:
            raise RuntimeError("VectorService must be used as an async context manager.")
        return self._components

    async def warm_up(self) -> bool:
        """Load the embedding model ahead of the first request.

        Failures are logged and reported rather than raised; the next
        embedding call retries the load.
        """
        try:
            await self.components.embedding_provider.initialize()
        except ModelLoadError as exc:
            logger.error("Failed to initialize embedding service: %s", exc)
            return False
        return True

    async def search(
        self, project_id: int, query: str, options: OptionsInput = None
    ) -> list[SearchResult]:
        if project_id is None or not query:
            raise InvalidQuery("Project ID and query are required")
        return await self.components.engine.search(
            _parse_project_id(project_id), query, self._parse_options(options)
        )

    async def find_similar(
        self,
        project_id: int,
        entity_type: EntityType | str,
        entity_id: str,
        options: OptionsInput = None,
    ) -> list[SearchResult]:
        if project_id is None or not entity_type or not entity_id:
            raise InvalidQuery("Project ID, entity type, and entity ID are required")
        return await self.components.engine.find_similar(
            _parse_project_id(project_id),
            _parse_entity_type(entity_type),
            str(entity_id),
            self._parse_options(options),
        )

    async def index_knowledge(self, knowledge_id: str) -> None:
        if not knowledge_id:
            raise InvalidQuery("Knowledge ID is required")
        await self.components.coordinator.index_knowledge(str(knowledge_id))

    async def index_chapter(self, chapter_id: str) -> None:
        if not chapter_id:
            raise InvalidQuery("Chapter ID is required")
        await self.components.coordinator.index_chapter(str(chapter_id))

    async def reindex_project(
        self, project_id: int, cancel_event: anyio.Event | None = None
    ) -> ReindexReport:
        if project_id is None:
            raise InvalidQuery("Project ID is required")
        return await self.components.coordinator.reindex_project(
            _parse_project_id(project_id), cancel_event=cancel_event
        )

    async def remove_knowledge_index(self, knowledge_id: str, project_id: int) -> bool:
        if not knowledge_id or project_id is None:
            raise InvalidQuery("Knowledge ID and project ID are required")
        return await self.components.coordinator.remove_knowledge_index(
            str(knowledge_id), _parse_project_id(project_id)
        )

    async def remove_chapter_index(self, chapter_id: str, project_id: int) -> bool:
        if not chapter_id or project_id is None:
            raise InvalidQuery("Chapter ID and project ID are required")
        return await self.components.coordinator.remove_chapter_index(
            str(chapter_id), _parse_project_id(project_id)
        )

    async def calculate_similarity(self, text1: str, text2: str) -> float:
        if not text1 or not text2:
            raise InvalidQuery("Both texts are required")
        return await self.components.embedding_provider.calculate_similarity(
            text1, text2
        )

    def _parse_options(self, options: OptionsInput) -> SearchOptions:
        defaults = SearchOptions(
            limit=self._settings.default_search_limit,
            min_similarity=self._settings.default_min_similarity,
        )
        if options is None:
            return defaults
        if isinstance(options, SearchOptions):
            return options
        try:
            parsed = SearchOptions.model_validate(dict(options))
        except ValidationError as exc:
            raise InvalidQuery(f"Invalid search options: {exc}") from exc
        return defaults.model_copy(update=parsed.model_dump(exclude_unset=True))


def _parse_project_id(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidQuery(f"Invalid project ID: {value!r}") from exc


def _parse_entity_type(value: EntityType | str) -> EntityType:
    if isinstance(value, EntityType):
        return value
    try:
        return EntityType(value)
    except ValueError as exc:
        raise InvalidQuery(f"Unknown entity type: {value!r}") from exc
