# tests/unit/rag/embeddings/test_openai_embedder.py — v1
"""Tests for rag/embeddings/openai_embedder.py — request shape and failures."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from peoplefinder.config.settings import Settings
from peoplefinder.core.errors import EmbeddingServiceError
from peoplefinder.rag.embeddings.embedder_factory import (
    UnsupportedEmbeddingProviderError,
    create_embedder,
)
from peoplefinder.rag.embeddings.openai_embedder import OpenAIEmbedder


def _client(vectors: list[list[float]]) -> MagicMock:
    client = MagicMock()
    client.embeddings.create = AsyncMock(
        return_value=SimpleNamespace(data=[SimpleNamespace(embedding=v) for v in vectors])
    )
    return client


class TestOpenAIEmbedder:
    @pytest.mark.asyncio
    async def test_batch(self):
        client = _client([[0.1, 0.2], [0.3, 0.4]])
        embedder = OpenAIEmbedder(client=client)
        vectors = await embedder.embed_texts(["a", "b"])
        assert vectors == [[0.1, 0.2], [0.3, 0.4]]
        kwargs = client.embeddings.create.await_args.kwargs
        assert kwargs == {"input": ["a", "b"], "model": "text-embedding-3-large"}

    @pytest.mark.asyncio
    async def test_shortened_dimensions_passed(self):
        client = _client([[0.1]])
        embedder = OpenAIEmbedder(dimensions=256, client=client)
        await embedder.embed_query("q")
        assert client.embeddings.create.await_args.kwargs["dimensions"] == 256

    @pytest.mark.asyncio
    async def test_empty_input(self):
        client = _client([])
        assert await OpenAIEmbedder(client=client).embed_texts([]) == []
        client.embeddings.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_service_failure(self):
        client = MagicMock()
        client.embeddings.create = AsyncMock(side_effect=RuntimeError("quota"))
        with pytest.raises(EmbeddingServiceError, match="quota"):
            await OpenAIEmbedder(client=client).embed_texts(["a"])

    @pytest.mark.asyncio
    async def test_empty_vector_rejected(self):
        with pytest.raises(EmbeddingServiceError, match="empty"):
            await OpenAIEmbedder(client=_client([[]])).embed_texts(["a"])

    @pytest.mark.asyncio
    async def test_count_mismatch_rejected(self):
        with pytest.raises(EmbeddingServiceError, match="Expected 2"):
            await OpenAIEmbedder(client=_client([[0.1]])).embed_texts(["a", "b"])

    def test_properties(self):
        embedder = OpenAIEmbedder(model="text-embedding-3-small", dimensions=1536)
        assert embedder.provider_name == "openai"
        assert embedder.model_name == "text-embedding-3-small"
        assert embedder.dimensions == 1536


class TestEmbedderFactory:
    def test_openai(self):
        embedder = create_embedder(Settings(_env_file=None, openai_api_key="sk-test"))
        assert isinstance(embedder, OpenAIEmbedder)
        assert embedder.model_name == "text-embedding-3-large"

    def test_unknown_provider(self):
        with pytest.raises(UnsupportedEmbeddingProviderError):
            create_embedder(Settings(_env_file=None, embedding_provider="nope"))
