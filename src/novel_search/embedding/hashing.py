"""Deterministic feature-hashing embeddings for offline use."""

from __future__ import annotations

import hashlib
import re

from novel_search.embedding.base import DEFAULT_BATCH_SIZE, EmbeddingProvider, normalize

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class HashingEmbeddingProvider(EmbeddingProvider):
    """Hash each token into a signed bucket and L2-normalize the counts.

    Texts sharing words get similar vectors; there is no notion of meaning
    beyond lexical overlap. Requires no model download.
    """

    def __init__(
        self,
        dimension: int = 768,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        super().__init__(dimension=dimension, batch_size=batch_size)

    @property
    def name(self) -> str:
        return f"hashing-{self.dimension}"

    async def _load(self) -> None:
        return None

    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        return [self._embed_one(text) for text in texts]

    def _embed_one(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens:
            # Empty input still maps to a valid unit vector.
            vector[0] = 1.0
            return vector

        for token in tokens:
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign
        if not any(vector):
            vector[0] = 1.0
        return normalize(vector)
