# src/rag/embeddings/base_embedder.py — v2
"""Abstract embeddings interface.

Implementations turn text into fixed-length vectors. A failed service call
or an empty vector raises EmbeddingServiceError; no partial batch is ever
returned.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseEmbedder(ABC):
    """Unified interface for all embedding providers."""

    @abstractmethod
    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts into vectors, one per input, in order."""

    @abstractmethod
    async def embed_query(self, query: str) -> list[float]:
        """Embed a single text."""

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Output vector dimensions."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier, recorded as the embedding version of posts."""
