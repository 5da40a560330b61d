"""Embedding provider interface and vector math primitives."""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Sequence

from novel_search.concurrency import RequestCoalescer
from novel_search.errors import (
    DimensionMismatchError,
    EmbeddingUnavailable,
    ModelLoadError,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 32


def vector_magnitude(vector: Sequence[float]) -> float:
    """Return the Euclidean norm of a vector."""
    return math.sqrt(math.sumprod(vector, vector))


def normalize(vector: Sequence[float]) -> list[float]:
    """Scale a vector to unit length. Zero vectors are returned unchanged."""
    magnitude = vector_magnitude(vector)
    if magnitude == 0.0:
        return list(vector)
    return [value / magnitude for value in vector]


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    if len(vec_a) != len(vec_b):
        raise DimensionMismatchError(len(vec_a), len(vec_b))

    norm_a = vector_magnitude(vec_a)
    norm_b = vector_magnitude(vec_b)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return math.sumprod(vec_a, vec_b) / (norm_a * norm_b)


class EmbeddingProvider(ABC):
    """Abstract interface for text embedding backends.

    Subclasses implement model loading and single-chunk encoding; this base
    class owns lazy initialization, chunked batching and output validation.
    """

    def __init__(self, dimension: int, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        """Initialize the provider.

        Args:
            dimension: Length of every vector the provider returns.
            batch_size: Number of texts encoded per backend call.
        """
        if dimension < 1:
            raise ValueError("Embedding dimension must be positive.")
        if batch_size < 1:
            raise ValueError("Embedding batch size must be positive.")
        self._dimension = dimension
        self._batch_size = batch_size
        self._initialized = False
        self._init_calls: RequestCoalescer[str, None] = RequestCoalescer()

    @property
    def dimension(self) -> int:
        """Return the fixed vector dimensionality."""
        return self._dimension

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    @abstractmethod
    def name(self) -> str:
        """Return a human-readable model identifier."""
        ...

    async def initialize(self) -> None:
        """Load the underlying model once.

        Concurrent callers share a single in-flight load. A failed load is
        not remembered, so the next call retries.

        Raises:
            ModelLoadError: If the model cannot be loaded.
        """
        if self._initialized:
            return
        await self._init_calls.run("initialize", self._perform_initialization)

    async def _perform_initialization(self) -> None:
        logger.info("Initializing embedding model %s", self.name)
        try:
            await self._load()
        except ModelLoadError:
            logger.error("Failed to initialize embedding model %s", self.name)
            raise
        except Exception as exc:
            logger.error("Failed to initialize embedding model %s: %s", self.name, exc)
            raise ModelLoadError(f"Could not load embedding model {self.name}") from exc
        self._initialized = True
        logger.info("Embedding model %s initialized", self.name)

    async def embed(self, text: str) -> list[float]:
        """Generate a unit-normalized embedding for a single text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for many texts, preserving input order.

        Raises:
            ModelLoadError: If the model is not loaded and loading fails.
            EmbeddingUnavailable: If the backend fails to produce vectors.
        """
        await self.initialize()

        embeddings: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            chunk = texts[start : start + self._batch_size]
            try:
                vectors = await self._embed_texts(chunk)
            except (EmbeddingUnavailable, DimensionMismatchError):
                raise
            except Exception as exc:
                logger.error("Failed to generate embeddings: %s", exc)
                raise EmbeddingUnavailable(
                    f"Embedding backend {self.name} failed: {exc}"
                ) from exc

            if len(vectors) != len(chunk):
                raise EmbeddingUnavailable(
                    f"Expected {len(chunk)} embeddings, got {len(vectors)}"
                )
            for vector in vectors:
                if len(vector) != self._dimension:
                    raise DimensionMismatchError(self._dimension, len(vector))
            embeddings.extend(vectors)
        return embeddings

    def cosine_similarity(self, vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
        """Compute cosine similarity between two vectors."""
        return cosine_similarity(vec_a, vec_b)

    async def calculate_similarity(self, text1: str, text2: str) -> float:
        """Embed two texts and return their cosine similarity."""
        embedding1, embedding2 = await self.embed_batch([text1, text2])
        return cosine_similarity(embedding1, embedding2)

    async def aclose(self) -> None:
        """Release backend resources."""
        return None

    @abstractmethod
    async def _load(self) -> None:
        """Load the backend model or client."""
        ...

    @abstractmethod
    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Encode one chunk of at most batch_size texts."""
        ...
