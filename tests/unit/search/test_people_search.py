# tests/unit/search/test_people_search.py — v1
"""Tests for search/people_search.py — ranking, join and reason lines."""

from __future__ import annotations

import pytest

from peoplefinder.core.models import PersonRow, SearchResult, VectorRecord
from peoplefinder.rag.embeddings.text_builder import profile_text
from peoplefinder.rag.vector_store.records import profile_metadata
from peoplefinder.search.people_search import (
    GENERIC_REASON,
    PeopleSearch,
    build_reason,
    to_person_match,
)


class TestBuildReason:
    def test_derived_fields(self):
        person = PersonRow(
            id=1,
            derived_role="Founder",
            derived_topics=["a", "b", "c", "d", "e", "f"],
            derived_summary="Builds robots",
        )
        match = SearchResult(id="1", metadata={"description": "ignored"})
        assert build_reason(match, person) == (
            "Role: Founder • Topics: a, b, c, d, e • Builds robots"
        )

    def test_description_fills_short_reason(self):
        person = PersonRow(id=1, derived_role="Engineer")
        match = SearchResult(id="1", metadata={"description": "Rust and compilers"})
        assert build_reason(match, person) == "Role: Engineer • Rust and compilers"

    def test_generic_fallback(self):
        assert build_reason(SearchResult(id="1")) == GENERIC_REASON


class TestToPersonMatch:
    def test_store_fields_win(self):
        person = PersonRow(
            id=1, x_user_id="1", name="Ada", x_username="ada",
            x_followers_count=50, x_url="https://ada.dev",
        )
        match = SearchResult(id="1", score=0.8, metadata={"name": "Old", "followers": 3})
        result = to_person_match(match, person)
        assert result.name == "Ada"
        assert result.followers == 50
        assert result.url == "https://ada.dev"
        assert result.similarity == 0.8

    def test_metadata_only(self):
        match = SearchResult(id="9", metadata={
            "username": "zed", "name": "Zed", "followers": 12.0, "topics": ["x", "y"],
        })
        result = to_person_match(match, None)
        assert result.handle == "zed"
        assert result.followers == 12
        assert result.topics == ["x", "y"]
        assert result.url == "https://x.com/zed"


class TestPeopleSearch:
    async def _index(self, store, embedder, vector_store, profile) -> None:
        await store.upsert_profile(profile)
        vector = await embedder.embed_query(profile_text(profile))
        await vector_store.upsert(
            "users",
            [VectorRecord(id=profile.id, values=vector, metadata=profile_metadata(profile))],
        )

    @pytest.mark.asyncio
    async def test_query_joins_store(self, store, embedder, vector_store, make_profile):
        ada = make_profile("1", "ada", name="Ada", description="compilers")
        bob = make_profile("2", "bob", name="Bob", description="gardening")
        await self._index(store, embedder, vector_store, ada)
        await self._index(store, embedder, vector_store, bob)

        search = PeopleSearch(store, embedder, vector_store)
        results = await search.search(profile_text(ada), top_k=1)

        assert [r.external_id for r in results] == ["1"]
        assert results[0].handle == "ada"
        assert results[0].followers == 10
        assert results[0].summary == "compilers"

    @pytest.mark.asyncio
    async def test_short_query_rejected(self, store, embedder, vector_store):
        with pytest.raises(ValueError):
            await PeopleSearch(store, embedder, vector_store).search("  ab ")
        assert embedder.calls == []

    def test_top_k_clamped(self, store, embedder, vector_store):
        search = PeopleSearch(store, embedder, vector_store)
        assert search.clamp_top_k(None) == 6
        assert search.clamp_top_k(50) == 10
        assert search.clamp_top_k(0) == 1
