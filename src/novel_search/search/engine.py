"""Similarity search over the vector store."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from novel_search.embedding.base import EmbeddingProvider, cosine_similarity
from novel_search.errors import EmbeddingUnavailable, InvalidQuery, ModelLoadError
from novel_search.vector.base import EntityType, VectorDocument, VectorStore
from novel_search.vector.cache import VectorCache

logger = logging.getLogger(__name__)


class SearchMode(Enum):
    """How far the query vector is perturbed before ranking."""

    EXACT = "exact"
    SIMILAR = "similar"
    SERENDIPITY = "serendipity"


# Half-width of the uniform noise added to each query component.
PERTURBATION_AMPLITUDE: dict[SearchMode, float] = {
    SearchMode.EXACT: 0.0,
    SearchMode.SIMILAR: 0.05,
    SearchMode.SERENDIPITY: 0.15,
}

NoiseSource = Callable[[int, float], list[float]]
"""Returns `dimension` independent offsets drawn from [-amplitude, amplitude]."""


def uniform_noise(dimension: int, amplitude: float) -> list[float]:
    """Draw independent uniform offsets from the module-level RNG."""
    return [random.uniform(-amplitude, amplitude) for _ in range(dimension)]


def seeded_noise(seed: int) -> NoiseSource:
    """Return a reproducible noise source backed by its own RNG."""
    rng = random.Random(seed)

    def _noise(dimension: int, amplitude: float) -> list[float]:
        return [rng.uniform(-amplitude, amplitude) for _ in range(dimension)]

    return _noise


def perturb(
    vector: Sequence[float],
    mode: SearchMode,
    noise: NoiseSource = uniform_noise,
) -> list[float]:
    """Add mode-dependent noise to a query vector.

    Exact mode returns the vector unchanged. Other modes are deliberately
    non-reproducible across calls unless a seeded noise source is used. The
    result is not re-normalized; cosine similarity ignores scale.
    """
    amplitude = PERTURBATION_AMPLITUDE[mode]
    if amplitude == 0.0:
        return list(vector)
    offsets = noise(len(vector), amplitude)
    return [value + offset for value, offset in zip(vector, offsets, strict=True)]


class SearchOptions(BaseModel):
    """Tunable parameters of a similarity query.

    Accepts both snake_case names and the camelCase keys sent by the UI
    (``minSimilarity``, ``entityTypes``, ``excludeIds``, ``searchMode``).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    limit: int = Field(default=10, ge=1)
    min_similarity: float = Field(default=0.5, ge=-1.0, le=1.0)
    entity_types: list[EntityType] | None = None
    exclude_ids: list[str] = Field(default_factory=list)
    search_mode: SearchMode = SearchMode.EXACT


@dataclass(slots=True)
class SearchResult:
    """A ranked match for a query."""

    id: str
    entity_type: EntityType
    entity_id: str
    content: str
    similarity: float
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "content": self.content,
            "similarity": self.similarity,
            "metadata": self.metadata,
        }


class SearchEngine:
    """Ranks a project's documents by cosine similarity to a query vector."""

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        vector_store: VectorStore,
        cache: VectorCache | None = None,
        noise: NoiseSource = uniform_noise,
    ) -> None:
        """Initialize the engine.

        Args:
            embedding_provider: Converts query and document text to vectors.
            vector_store: Source of truth for indexed documents.
            cache: Decoded-vector cache shared by searches and writes.
            noise: Noise source used by the similar and serendipity modes.
        """
        self._provider = embedding_provider
        self._store = vector_store
        self._cache = cache if cache is not None else VectorCache()
        self._noise = noise

    @property
    def embedding_provider(self) -> EmbeddingProvider:
        return self._provider

    @property
    def vector_store(self) -> VectorStore:
        return self._store

    @property
    def cache(self) -> VectorCache:
        return self._cache

    async def index_document(
        self,
        entity_type: EntityType,
        entity_id: str,
        project_id: int,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> VectorDocument:
        """Embed content and upsert it as the entity's document.

        The cache entry for the document is refreshed with the new vector.
        """
        vector = await self._embed(content)
        document = await self._store.upsert(
            entity_type, entity_id, project_id, content, vector, metadata
        )
        self._cache.put(document.id, vector)
        logger.info("Indexed document: %s/%s", entity_type.value, entity_id)
        return document

    async def remove_document(
        self,
        entity_type: EntityType,
        entity_id: str,
        project_id: int,
    ) -> bool:
        """Delete an entity's document and its cache entry."""
        document = await self._store.get_by_entity(entity_type, entity_id, project_id)
        if document is not None:
            self._cache.invalidate(document.id)
        return await self._store.delete_by_entity(entity_type, entity_id, project_id)

    async def clear_project(self, project_id: int) -> int:
        """Delete every document of a project and their cache entries."""
        for document in await self._store.query_by_project(project_id):
            self._cache.invalidate(document.id)
        return await self._store.delete_by_project(project_id)

    async def search(
        self,
        project_id: int,
        query_text: str,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """Find the project's documents most similar to a text query.

        Returns:
            Results with similarity >= min_similarity, best first, at most
            options.limit. An empty list means nothing cleared the threshold.

        Raises:
            InvalidQuery: If project_id or query_text is missing.
            EmbeddingUnavailable: If the query cannot be embedded.
        """
        if project_id is None:
            raise InvalidQuery("Project ID is required")
        if not query_text or not query_text.strip():
            raise InvalidQuery("Query text is required")

        options = options or SearchOptions()
        query_vector = await self._embed(query_text)
        return await self._rank(project_id, query_vector, options)

    async def find_similar(
        self,
        project_id: int,
        entity_type: EntityType,
        entity_id: str,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """Find documents similar to an already indexed entity.

        The entity's stored vector is the query, so nothing is re-embedded.
        The entity's own document never appears in the results.
        """
        if project_id is None:
            raise InvalidQuery("Project ID is required")
        if entity_type is None or not entity_id:
            raise InvalidQuery("Entity type and entity ID are required")

        options = options or SearchOptions()
        document = await self._store.get_by_entity(entity_type, entity_id, project_id)
        if document is None:
            return []

        query_vector = self._resolve_vector(document)
        options = options.model_copy(
            update={"exclude_ids": [*options.exclude_ids, document.id]}
        )
        return await self._rank(project_id, query_vector, options)

    async def _rank(
        self,
        project_id: int,
        query_vector: list[float],
        options: SearchOptions,
    ) -> list[SearchResult]:
        perturbed = perturb(query_vector, options.search_mode, self._noise)
        documents = await self._store.query_by_project(
            project_id,
            entity_types=options.entity_types,
            exclude_ids=options.exclude_ids,
        )

        results: list[SearchResult] = []
        for document in documents:
            vector = self._resolve_vector(document)
            similarity = cosine_similarity(perturbed, vector)
            if similarity >= options.min_similarity:
                results.append(
                    SearchResult(
                        id=document.id,
                        entity_type=document.entity_type,
                        entity_id=document.entity_id,
                        content=document.content,
                        similarity=similarity,
                        metadata=document.metadata,
                    )
                )

        # Stable sort: ties keep scan order.
        results.sort(key=lambda result: result.similarity, reverse=True)
        logger.debug(
            "Ranked %d of %d documents for project %s",
            len(results),
            len(documents),
            project_id,
        )
        return results[: options.limit]

    def _resolve_vector(self, document: VectorDocument) -> list[float]:
        vector = self._cache.get(document.id)
        if vector is None:
            vector = document.vector
            self._cache.put(document.id, vector)
        return vector

    async def _embed(self, text: str) -> list[float]:
        try:
            return await self._provider.embed(text)
        except ModelLoadError as exc:
            raise EmbeddingUnavailable(f"Embedding model unavailable: {exc}") from exc
