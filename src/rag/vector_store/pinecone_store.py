# src/rag/vector_store/pinecone_store.py — v1
"""Pinecone vector store adapter over the index data-plane REST API.

Talks to the index host directly with httpx (Api-Key header); no SDK.
Any non-2xx response raises VectorIndexError with the status and body.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from peoplefinder.core.errors import VectorIndexError
from peoplefinder.core.models import SearchResult, VectorRecord
from peoplefinder.rag.vector_store.base_vector_store import BaseVectorStore

logger = logging.getLogger(__name__)

UPSERT_BATCH_SIZE = 32


def normalize_host(index_host: str) -> str:
    """Strip scheme and trailing slashes: 'https://idx.io/' -> 'idx.io'."""
    host = index_host.strip()
    for scheme in ("https://", "http://"):
        if host.startswith(scheme):
            host = host[len(scheme):]
    return host.rstrip("/")


class PineconeStore(BaseVectorStore):
    """Vector store backed by a Pinecone index."""

    def __init__(
        self,
        api_key: str,
        index_host: str,
        *,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("PINECONE_API_KEY is required")
        host = normalize_host(index_host)
        if not host:
            raise ValueError("PINECONE_INDEX_HOST is required")
        self._client = httpx.AsyncClient(
            base_url=f"https://{host}",
            headers={"Api-Key": api_key, "Content-Type": "application/json"},
            timeout=timeout_s,
            transport=transport,
        )

    async def upsert(self, namespace: str, records: list[VectorRecord]) -> None:
        """Insert or update vectors, in batches."""
        for start in range(0, len(records), UPSERT_BATCH_SIZE):
            batch = records[start:start + UPSERT_BATCH_SIZE]
            await self._request(
                "POST",
                "/vectors/upsert",
                operation="upsert",
                json={
                    "vectors": [r.model_dump() for r in batch],
                    "namespace": namespace,
                },
            )
        logger.debug("Upserted %d vectors into namespace '%s'", len(records), namespace)

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int = 10,
        filter: dict | None = None,
    ) -> list[SearchResult]:
        """Query by embedding similarity."""
        body: dict[str, Any] = {
            "vector": vector,
            "topK": top_k,
            "namespace": namespace,
            "includeMetadata": True,
            "includeValues": False,
        }
        if filter:
            body["filter"] = filter
        payload = await self._request("POST", "/query", operation="query", json=body)
        return [
            SearchResult(
                id=match["id"],
                score=match.get("score", 0.0),
                metadata=match.get("metadata") or {},
            )
            for match in payload.get("matches") or []
        ]

    async def fetch(self, namespace: str, ids: list[str]) -> dict[str, VectorRecord]:
        """Fetch stored vectors by id."""
        if not ids:
            return {}
        params = [("ids", i) for i in ids] + [("namespace", namespace)]
        payload = await self._request(
            "GET", "/vectors/fetch", operation="fetch", params=params
        )
        records: dict[str, VectorRecord] = {}
        for vid, item in (payload.get("vectors") or {}).items():
            records[vid] = VectorRecord(
                id=item.get("id", vid),
                values=item.get("values") or [],
                metadata=item.get("metadata") or {},
            )
        return records

    async def delete(self, namespace: str, ids: list[str]) -> None:
        """Delete vectors by ID."""
        if not ids:
            return
        await self._request(
            "POST",
            "/vectors/delete",
            operation="delete",
            json={"ids": ids, "namespace": namespace},
        )

    async def close(self) -> None:
        await self._client.aclose()

    @property
    def provider_name(self) -> str:
        return "pinecone"

    async def _request(
        self, method: str, path: str, *, operation: str, **kwargs: Any
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise VectorIndexError(0, str(e), operation=operation) from e
        if response.is_error:
            raise VectorIndexError(response.status_code, response.text, operation=operation)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise VectorIndexError(
                response.status_code, response.text, operation=operation
            ) from e
