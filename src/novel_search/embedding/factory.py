"""Construct the configured embedding provider."""

from __future__ import annotations

from novel_search.config import Settings
from novel_search.embedding.base import EmbeddingProvider
from novel_search.embedding.hashing import HashingEmbeddingProvider
from novel_search.embedding.openai_provider import OpenAIEmbeddingProvider


def build_embedding_provider(settings: Settings) -> EmbeddingProvider:
    """Return the embedding provider selected by settings.embedding_backend.

    Raises:
        ValueError: If the OpenAI backend is selected without an API key.
    """
    if settings.embedding_backend == "hashing":
        return HashingEmbeddingProvider(
            dimension=settings.embedding_dim,
            batch_size=settings.embedding_batch_size,
        )

    if settings.embedding_backend == "openai":
        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required for the openai backend.")
        return OpenAIEmbeddingProvider(
            api_key=settings.openai_api_key,
            embedding_model=settings.openai_embedding_model,
            dimension=settings.embedding_dim,
            batch_size=settings.embedding_batch_size,
        )

    # Deferred so the hashing and openai backends never import torch.
    from novel_search.embedding.local import LocalEmbeddingProvider

    return LocalEmbeddingProvider(
        model_name=settings.local_embedding_model,
        dimension=settings.embedding_dim,
        batch_size=settings.embedding_batch_size,
    )
