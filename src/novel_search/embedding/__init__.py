"""Embedding providers and vector similarity primitives."""

from novel_search.embedding.base import (
    EmbeddingProvider,
    cosine_similarity,
    normalize,
    vector_magnitude,
)
from novel_search.embedding.factory import build_embedding_provider
from novel_search.embedding.hashing import HashingEmbeddingProvider
from novel_search.embedding.openai_provider import OpenAIEmbeddingProvider

__all__ = [
    "EmbeddingProvider",
    "HashingEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "build_embedding_provider",
    "cosine_similarity",
    "normalize",
    "vector_magnitude",
]
