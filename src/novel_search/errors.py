"""Exception types raised by the search and indexing layers."""


class VectorSearchError(Exception):
    """Base class for all novel_search errors."""

    pass


class ModelLoadError(VectorSearchError):
    """The embedding model could not be loaded.

    Dependent operations fail until initialization is retried successfully.
    """

    pass


class DimensionMismatchError(VectorSearchError, ValueError):
    """Two vectors (or a vector and the store) disagree on dimensionality."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class EmbeddingUnavailable(VectorSearchError):
    """A vector could not be produced for a query or document. Safe to retry."""

    pass


class EntityNotFound(VectorSearchError):
    """A source entity vanished between the request and its processing."""

    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(f"{entity_type} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class StoreWriteError(VectorSearchError):
    """The vector store failed to persist an upsert or delete."""

    pass


class InvalidQuery(VectorSearchError, ValueError):
    """A request is missing a required argument or carries invalid options."""

    pass


class ReindexCancelled(VectorSearchError):
    """A project reindex was stopped through its cancellation event."""

    def __init__(self, project_id: int, completed: int) -> None:
        super().__init__(
            f"Reindex of project {project_id} cancelled after {completed} entities"
        )
        self.project_id = project_id
        self.completed = completed
