# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides a SQLite store on tmp_path, a deterministic fake embedder, an
in-memory vector index, a limiter that never really sleeps and upstream
payload builders. No external services are contacted.
"""

from __future__ import annotations

import asyncio
import hashlib
import math
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

from peoplefinder.core.errors import EmbeddingServiceError, VectorIndexError
from peoplefinder.core.models import (
    PostMetrics,
    PublicMetrics,
    SearchResult,
    VectorRecord,
    XPost,
    XProfile,
)
from peoplefinder.db.sqlite_store import SqliteRelationalStore
from peoplefinder.rag.embeddings.base_embedder import BaseEmbedder
from peoplefinder.rag.vector_store.base_vector_store import BaseVectorStore
from peoplefinder.source.rate_limiter import RateLimiter


# === FAKES ===


def _cosine(a: list[float], b: list[float]) -> float:
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return sum(x * y for x, y in zip(a, b)) / norm if norm else 0.0


class FakeEmbedder(BaseEmbedder):
    """Hash-based embedder: same text, same vector."""

    def __init__(self, dims: int = 8, fail: bool = False) -> None:
        self._dims = dims
        self.fail = fail
        self.calls: list[list[str]] = []

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingServiceError("embedding service unavailable")
        return [self._vector(t) for t in texts]

    async def embed_query(self, query: str) -> list[float]:
        return (await self.embed_texts([query]))[0]

    def _vector(self, text: str) -> list[float]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [b / 255.0 + 0.01 for b in digest[: self._dims]]

    @property
    def dimensions(self) -> int:
        return self._dims

    @property
    def provider_name(self) -> str:
        return "fake"

    @property
    def model_name(self) -> str:
        return "fake-embed-1"


class InMemoryVectorStore(BaseVectorStore):
    """Namespace -> id -> record, with cosine ranking."""

    def __init__(self) -> None:
        self.namespaces: dict[str, dict[str, VectorRecord]] = {}
        self.fail_upsert = False
        self.upsert_calls = 0

    async def upsert(self, namespace: str, records: list[VectorRecord]) -> None:
        self.upsert_calls += 1
        if self.fail_upsert:
            raise VectorIndexError(503, "index unavailable", operation="upsert")
        ns = self.namespaces.setdefault(namespace, {})
        for record in records:
            ns[record.id] = record

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int = 10,
        filter: dict | None = None,
    ) -> list[SearchResult]:
        scored = [
            SearchResult(
                id=r.id,
                score=_cosine(vector, r.values),
                metadata=r.metadata,
            )
            for r in self.namespaces.get(namespace, {}).values()
        ]
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[:top_k]

    async def fetch(self, namespace: str, ids: list[str]) -> dict[str, VectorRecord]:
        ns = self.namespaces.get(namespace, {})
        return {i: ns[i] for i in ids if i in ns}

    async def delete(self, namespace: str, ids: list[str]) -> None:
        ns = self.namespaces.get(namespace, {})
        for i in ids:
            ns.pop(i, None)

    @property
    def provider_name(self) -> str:
        return "memory"


# === FIXTURES ===


@pytest.fixture
def store(tmp_path):
    """Fresh SQLite store per test."""
    s = SqliteRelationalStore(tmp_path / "peoplefinder.db")
    yield s
    asyncio.run(s.close())


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def limiter() -> RateLimiter:
    """Limiter whose waits resolve immediately."""
    return RateLimiter.from_interval(1.0, sleep=AsyncMock(), name="test")


# === PAYLOAD BUILDERS ===


def _make_profile(
    x_id: str = "1001",
    username: str = "alice",
    name: str | None = None,
    followers: int = 10,
    **extra: Any,
) -> XProfile:
    return XProfile(
        id=x_id,
        username=username,
        name=name if name is not None else username.title(),
        public_metrics=PublicMetrics(
            followers_count=followers, following_count=5, listed_count=1, tweet_count=42
        ),
        **extra,
    )


def _make_post(
    post_id: str,
    text: str = "hello world",
    created_at: datetime | None = None,
    likes: int = 0,
) -> XPost:
    return XPost(
        id=post_id,
        text=text,
        lang="en",
        created_at=created_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
        public_metrics=PostMetrics(like_count=likes),
    )


@pytest.fixture
def make_profile():
    """Builder for upstream profile payloads."""
    return _make_profile


@pytest.fixture
def make_post():
    """Builder for upstream post payloads."""
    return _make_post
