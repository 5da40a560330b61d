"""OpenAI embeddings API provider."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import anyio
from openai import APIConnectionError, AsyncOpenAI, RateLimitError

from novel_search.embedding.base import DEFAULT_BATCH_SIZE, EmbeddingProvider, normalize
from novel_search.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeds text through the OpenAI embeddings endpoint."""

    DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
    MAX_RETRIES = 5
    BASE_DELAY = 1.0  # Base delay in seconds for exponential backoff

    def __init__(
        self,
        api_key: str,
        embedding_model: str | None = None,
        dimension: int = 768,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        """Initialize the OpenAI provider.

        Args:
            api_key: OpenAI API key.
            embedding_model: Model to use (default: text-embedding-3-small).
            dimension: Requested output dimensionality.
            batch_size: Number of texts sent per request.
        """
        super().__init__(dimension=dimension, batch_size=batch_size)
        self._client = AsyncOpenAI(api_key=api_key)
        self._embedding_model = embedding_model or self.DEFAULT_EMBEDDING_MODEL

    @property
    def name(self) -> str:
        return self._embedding_model

    async def _load(self) -> None:
        return None

    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        # The API rejects empty strings.
        inputs = [text if text.strip() else " " for text in texts]
        kwargs: dict[str, Any] = {
            "model": self._embedding_model,
            "input": inputs,
        }
        if self._embedding_model.startswith("text-embedding-3"):
            kwargs["dimensions"] = self.dimension

        response = await self._request_with_retry(
            self._client.embeddings.create, **kwargs
        )
        data = sorted(response.data, key=lambda item: item.index)
        return [normalize(item.embedding) for item in data]

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.close()

    async def _request_with_retry(
        self,
        func: Any,
        **kwargs: Any,
    ) -> T:
        """Execute an API request with exponential backoff retry.

        Raises:
            EmbeddingUnavailable: If all retries are exhausted.
        """
        last_error: Exception | None = None

        for attempt in range(self.MAX_RETRIES):
            try:
                return await func(**kwargs)
            except RateLimitError as e:
                last_error = e
                delay = self.BASE_DELAY * (2**attempt)
                logger.warning(
                    "Rate limited (attempt %d/%d), retrying in %.1f seconds",
                    attempt + 1,
                    self.MAX_RETRIES,
                    delay,
                )
                await anyio.sleep(delay)
            except APIConnectionError as e:
                last_error = e
                delay = self.BASE_DELAY * (2**attempt)
                logger.warning(
                    "Connection error (attempt %d/%d), retrying in %.1f seconds: %s",
                    attempt + 1,
                    self.MAX_RETRIES,
                    delay,
                    str(e),
                )
                await anyio.sleep(delay)

        raise EmbeddingUnavailable(
            f"Embedding request failed after {self.MAX_RETRIES} retries"
        ) from last_error
