"""Bounded LRU cache of decoded document vectors."""

from __future__ import annotations

from collections import OrderedDict

DEFAULT_CACHE_SIZE = 1000


class VectorCache:
    """Map document ids to decoded vectors, evicting the least recently used.

    Both get() hits and put() count as use. The cache is advisory: a miss
    means the caller decodes the vector from the store row itself.
    """

    def __init__(self, capacity: int = DEFAULT_CACHE_SIZE) -> None:
        if capacity < 1:
            raise ValueError("Cache capacity must be positive.")
        self._capacity = capacity
        self._entries: OrderedDict[str, list[float]] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, document_id: str) -> list[float] | None:
        """Return the cached vector, or None on a miss."""
        vector = self._entries.get(document_id)
        if vector is not None:
            self._entries.move_to_end(document_id)
        return vector

    def put(self, document_id: str, vector: list[float]) -> None:
        """Store a vector, evicting the LRU entry if full and the id is new."""
        if document_id in self._entries:
            self._entries.move_to_end(document_id)
        elif len(self._entries) >= self._capacity:
            self._entries.popitem(last=False)
        self._entries[document_id] = vector

    def invalidate(self, document_id: str) -> None:
        """Drop a single entry if present."""
        self._entries.pop(document_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
