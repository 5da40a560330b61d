"""Vector store implementations, cache and interfaces."""

from novel_search.vector.base import (
    EntityType,
    VectorDocument,
    VectorStore,
    decode_vector,
    encode_vector,
)
from novel_search.vector.cache import VectorCache
from novel_search.vector.sqlite_store import SQLiteVectorStore

__all__ = [
    "EntityType",
    "SQLiteVectorStore",
    "VectorCache",
    "VectorDocument",
    "VectorStore",
    "decode_vector",
    "encode_vector",
]
