"""Local sentence-transformers embedding provider."""

from __future__ import annotations

import logging
from functools import partial
from typing import Any

import anyio
from sentence_transformers import SentenceTransformer

from novel_search.embedding.base import DEFAULT_BATCH_SIZE, EmbeddingProvider
from novel_search.errors import ModelLoadError

logger = logging.getLogger(__name__)


class LocalEmbeddingProvider(EmbeddingProvider):
    """Embeds text with a locally loaded sentence-transformers model.

    Model loading and encoding are blocking, so both run in a worker thread.
    Encoding is serialized through a single-slot limiter to keep one model
    invocation active at a time.
    """

    DEFAULT_MODEL = "intfloat/multilingual-e5-base"
    DEFAULT_DIMENSION = 768

    def __init__(
        self,
        model_name: str | None = None,
        dimension: int = DEFAULT_DIMENSION,
        batch_size: int = DEFAULT_BATCH_SIZE,
        device: str | None = None,
    ) -> None:
        """Initialize the provider without loading the model.

        Args:
            model_name: Hugging Face model id (default: multilingual-e5-base).
            dimension: Expected embedding dimension of the model.
            batch_size: Number of texts passed to each encode call.
            device: Optional torch device string, e.g. "cpu" or "cuda".
        """
        super().__init__(dimension=dimension, batch_size=batch_size)
        self._model_name = model_name or self.DEFAULT_MODEL
        self._device = device
        self._model: SentenceTransformer | None = None
        self._limiter: anyio.CapacityLimiter | None = None

    @property
    def name(self) -> str:
        return self._model_name

    async def _load(self) -> None:
        model = await anyio.to_thread.run_sync(self._create_model)
        actual = model.get_sentence_embedding_dimension()
        if actual is not None and actual != self.dimension:
            raise ModelLoadError(
                f"Model {self._model_name} produces {actual}-dimensional vectors, "
                f"expected {self.dimension}"
            )
        self._model = model

    def _create_model(self) -> SentenceTransformer:
        kwargs: dict[str, Any] = {}
        if self._device is not None:
            kwargs["device"] = self._device
        return SentenceTransformer(self._model_name, **kwargs)

    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        if self._model is None:
            raise ModelLoadError(f"Model {self._model_name} is not loaded")
        if self._limiter is None:
            self._limiter = anyio.CapacityLimiter(1)

        encode = partial(
            self._model.encode,
            texts,
            batch_size=self.batch_size,
            convert_to_numpy=True,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        embeddings = await anyio.to_thread.run_sync(encode, limiter=self._limiter)
        return [[float(value) for value in row] for row in embeddings]
