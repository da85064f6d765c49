# src/rag/embeddings/openai_embedder.py — v2
"""OpenAI embedding adapter.

Uses the openai SDK for embedding generation.
Models: text-embedding-3-small, text-embedding-3-large.
"""

from __future__ import annotations

import logging

from peoplefinder.core.errors import EmbeddingServiceError
from peoplefinder.rag.embeddings.base_embedder import BaseEmbedder

logger = logging.getLogger(__name__)

_NATIVE_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbedder(BaseEmbedder):
    """Embeddings via OpenAI API."""

    def __init__(
        self,
        model: str = "text-embedding-3-large",
        api_key: str | None = None,
        dimensions: int = 3072,
        client: object | None = None,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._dimensions = dimensions
        self.__client = client

    @property
    def _client(self):
        if self.__client is None:
            try:
                import openai
            except ImportError as e:
                raise ImportError(
                    "openai package required: pip install openai"
                ) from e
            self.__client = openai.AsyncOpenAI(api_key=self._api_key or "")
        return self.__client

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed document texts via OpenAI API."""
        if not texts:
            return []
        kwargs: dict = {"input": texts, "model": self._model}
        # Only shortened outputs need the explicit parameter
        if _NATIVE_DIMENSIONS.get(self._model) not in (None, self._dimensions):
            kwargs["dimensions"] = self._dimensions
        try:
            response = await self._client.embeddings.create(**kwargs)
        except Exception as e:
            raise EmbeddingServiceError(
                f"OpenAI embedding request failed ({self._model}): {e}"
            ) from e

        vectors = [item.embedding for item in response.data]
        if len(vectors) != len(texts):
            raise EmbeddingServiceError(
                f"Expected {len(texts)} embeddings, got {len(vectors)}"
            )
        if any(not v for v in vectors):
            raise EmbeddingServiceError("Embedding service returned an empty vector")
        return vectors

    async def embed_query(self, query: str) -> list[float]:
        """Embed a single text (same endpoint, no special instruction)."""
        return (await self.embed_texts([query]))[0]

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model
