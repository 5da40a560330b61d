"""Vector store interfaces and data models."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import TracebackType
from typing import Any


class EntityType(Enum):
    """Kinds of source records that can be indexed."""

    KNOWLEDGE = "knowledge"
    CHAPTER = "chapter"
    CHARACTER = "character"
    PLOT = "plot"


def encode_vector(vector: Sequence[float]) -> str:
    """Serialize a vector for storage."""
    return json.dumps([float(value) for value in vector], separators=(",", ":"))


def decode_vector(encoded: str) -> list[float]:
    """Deserialize a stored vector."""
    return [float(value) for value in json.loads(encoded)]


@dataclass(slots=True)
class VectorDocument:
    """An indexed entity: its embedded text, vector and bookkeeping.

    The vector is kept in its stored (JSON) form and decoded on access, so
    callers holding a cached copy never pay for the decode.
    """

    id: str
    entity_type: EntityType
    entity_id: str
    project_id: int
    content: str
    encoded_vector: str = field(repr=False)
    magnitude: float
    metadata: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @property
    def vector(self) -> list[float]:
        """Return the decoded vector."""
        return decode_vector(self.encoded_vector)


class VectorStore(ABC):
    """Abstract interface for persistent vector documents.

    Contract:
        At most one document exists per (entity_type, entity_id, project_id).
        Upserts for an existing key keep the document id and created_at and
        replace content, vector, magnitude and metadata in one atomic write.
    """

    @abstractmethod
    async def upsert(
        self,
        entity_type: EntityType,
        entity_id: str,
        project_id: int,
        content: str,
        vector: Sequence[float],
        metadata: dict[str, Any] | None = None,
    ) -> VectorDocument:
        """Insert or replace the document for an entity.

        Args:
            entity_type: Kind of the source entity.
            entity_id: Identifier of the entity in its owning store.
            project_id: Project the entity belongs to.
            content: Exact text that was embedded.
            vector: Embedding of content.
            metadata: Optional JSON-serializable metadata.

        Returns:
            The stored document as it now exists.
        """
        ...

    @abstractmethod
    async def query_by_project(
        self,
        project_id: int,
        entity_types: Sequence[EntityType] | None = None,
        exclude_ids: Sequence[str] | None = None,
    ) -> list[VectorDocument]:
        """Return all documents of a project matching the filters, in scan order."""
        ...

    @abstractmethod
    async def get_by_entity(
        self,
        entity_type: EntityType,
        entity_id: str,
        project_id: int,
    ) -> VectorDocument | None:
        """Return the document for an entity, if indexed."""
        ...

    @abstractmethod
    async def delete_by_entity(
        self,
        entity_type: EntityType,
        entity_id: str,
        project_id: int,
    ) -> bool:
        """Delete the document for an entity. Returns True if a row was removed."""
        ...

    @abstractmethod
    async def delete_by_project(self, project_id: int) -> int:
        """Delete every document of a project. Returns the number removed."""
        ...

    @abstractmethod
    async def count(self, project_id: int) -> int:
        """Return the number of documents stored for a project."""
        ...

    async def close(self) -> None:
        """Release storage resources."""
        return None

    async def __aenter__(self) -> "VectorStore":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
