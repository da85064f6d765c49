# src/rag/vector_store/chromadb_store.py — v2
"""ChromaDB vector store adapter.

Uses the chromadb SDK for local or remote vector storage; each namespace
is a collection. Chroma metadata only accepts scalar values, so list
values are joined with ", " and None values are dropped.
Requires: pip install chromadb.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from peoplefinder.core.errors import VectorIndexError
from peoplefinder.core.models import SearchResult, VectorRecord
from peoplefinder.rag.vector_store.base_vector_store import BaseVectorStore

logger = logging.getLogger(__name__)


def sanitize_metadata(metadata: dict[str, Any]) -> dict[str, str | int | float | bool]:
    """Flatten metadata to the scalar types Chroma accepts."""
    clean: dict[str, str | int | float | bool] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            clean[key] = ", ".join(str(v) for v in value)
        elif isinstance(value, (str, int, float, bool)):
            clean[key] = value
        else:
            clean[key] = str(value)
    return clean


class ChromaDBStore(BaseVectorStore):
    """Vector store backed by ChromaDB."""

    def __init__(
        self,
        persist_path: str | Path | None = None,
        host: str | None = None,
        port: int = 8000,
        client: Any | None = None,
    ) -> None:
        if client is not None:
            self._client = client
            return
        try:
            import chromadb
        except ImportError as e:
            raise ImportError(
                "chromadb package required: pip install chromadb"
            ) from e

        if host:
            self._client = chromadb.HttpClient(host=host, port=port)
        elif persist_path:
            path = Path(persist_path).expanduser()
            path.mkdir(parents=True, exist_ok=True)
            self._client = chromadb.PersistentClient(path=str(path))
        else:
            self._client = chromadb.Client()

    def _collection(self, namespace: str):
        return self._client.get_or_create_collection(
            namespace, metadata={"hnsw:space": "cosine"}
        )

    async def upsert(self, namespace: str, records: list[VectorRecord]) -> None:
        """Insert or update vectors."""
        if not records:
            return
        try:
            self._collection(namespace).upsert(
                ids=[r.id for r in records],
                embeddings=[r.values for r in records],
                metadatas=[sanitize_metadata(r.metadata) or None for r in records],
            )
        except Exception as e:
            raise VectorIndexError(0, str(e), operation="upsert") from e

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int = 10,
        filter: dict | None = None,
    ) -> list[SearchResult]:
        """Query by embedding similarity."""
        kwargs: dict = {
            "query_embeddings": [vector],
            "n_results": top_k,
            "include": ["metadatas", "distances"],
        }
        if filter:
            kwargs["where"] = filter
        try:
            results = self._collection(namespace).query(**kwargs)
        except Exception as e:
            raise VectorIndexError(0, str(e), operation="query") from e

        search_results: list[SearchResult] = []
        if results["ids"] and results["ids"][0]:
            for i, doc_id in enumerate(results["ids"][0]):
                score = 1.0 - (results["distances"][0][i] if results["distances"] else 0)
                meta = results["metadatas"][0][i] if results["metadatas"] else {}
                search_results.append(
                    SearchResult(id=doc_id, score=score, metadata=meta or {})
                )
        return search_results

    async def fetch(self, namespace: str, ids: list[str]) -> dict[str, VectorRecord]:
        """Fetch stored vectors by id."""
        if not ids:
            return {}
        try:
            result = self._collection(namespace).get(
                ids=ids, include=["embeddings", "metadatas"]
            )
        except Exception as e:
            raise VectorIndexError(0, str(e), operation="fetch") from e

        embeddings = result.get("embeddings")
        metadatas = result.get("metadatas")
        records: dict[str, VectorRecord] = {}
        for i, vid in enumerate(result.get("ids") or []):
            values = embeddings[i] if embeddings is not None else []
            records[vid] = VectorRecord(
                id=vid,
                values=[float(v) for v in values],
                metadata=(metadatas[i] if metadatas else None) or {},
            )
        return records

    async def delete(self, namespace: str, ids: list[str]) -> None:
        """Delete vectors by ID."""
        if not ids:
            return
        try:
            self._collection(namespace).delete(ids=ids)
        except Exception as e:
            raise VectorIndexError(0, str(e), operation="delete") from e

    @property
    def provider_name(self) -> str:
        return "chromadb"
