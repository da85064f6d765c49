# src/rag/vector_store/base_vector_store.py — v2
"""Abstract vector store interface.

Vectors live in namespaces (profiles and posts are kept apart). Upserts
are idempotent: re-upserting an id overwrites its vector and metadata.
Backends raise VectorIndexError when the service rejects a call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from peoplefinder.core.models import SearchResult, VectorRecord


class BaseVectorStore(ABC):
    """Unified interface for vector store backends."""

    @abstractmethod
    async def upsert(self, namespace: str, records: list[VectorRecord]) -> None:
        """Insert or update vectors with their metadata."""

    @abstractmethod
    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int = 10,
        filter: dict | None = None,
    ) -> list[SearchResult]:
        """Ranked nearest neighbours of ``vector``, best first."""

    @abstractmethod
    async def fetch(self, namespace: str, ids: list[str]) -> dict[str, VectorRecord]:
        """Stored records by id; missing ids are absent from the result."""

    @abstractmethod
    async def delete(self, namespace: str, ids: list[str]) -> None:
        """Delete vectors by ID."""

    async def exists(self, namespace: str, id: str) -> bool:
        """True when ``id`` has a stored, non-empty vector."""
        record = (await self.fetch(namespace, [id])).get(id)
        return record is not None and len(record.values) > 0

    async def close(self) -> None:
        """Release client resources. Default: nothing to release."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (pinecone, chromadb)."""
