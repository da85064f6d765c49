# tests/unit/rag/embeddings/test_text_builder.py — v1
"""Tests for rag/embeddings/text_builder.py — embedding input texts."""

from __future__ import annotations

from datetime import datetime, timezone

from peoplefinder.core.models import PendingPost, PersonRow
from peoplefinder.rag.embeddings.text_builder import (
    build_post_text,
    build_profile_text,
    person_text,
    profile_text,
)


class TestProfileText:
    def test_line_order(self):
        text = build_profile_text(
            name="Ada",
            username="ada",
            description="Builds compilers",
            location="London",
            derived_summary="Compiler engineer",
            derived_topics=["rust", "llvm"],
        )
        assert text.split("\n") == [
            "Ada",
            "@ada",
            "Compiler engineer",
            "Builds compilers",
            "Topics: rust, llvm",
            "Location: London",
        ]

    def test_absent_fields_skipped(self):
        assert build_profile_text(name="Ada", derived_topics=[]) == "Ada"
        assert build_profile_text() == ""

    def test_from_profile(self, make_profile):
        profile = make_profile("1", "ada", name="Ada", description="Hi")
        assert profile_text(profile) == "Ada\n@ada\nHi"

    def test_from_person_includes_derived(self):
        person = PersonRow(
            id=1, name="Ada", x_username="ada", x_description="Hi",
            derived_summary="Summary", derived_topics=["ml"],
        )
        assert person_text(person) == "Ada\n@ada\nSummary\nHi\nTopics: ml"


class TestPostText:
    def _post(self, **kw) -> PendingPost:
        defaults = dict(
            post_id="9", text="shipping it", person_id=1, x_user_id="77",
            posted_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        defaults.update(kw)
        return PendingPost(**defaults)

    def test_with_handle(self):
        assert build_post_text(self._post(x_username="ada")) == (
            "@ada — 2024-01-01T00:00:00.000Z\nshipping it"
        )

    def test_without_handle(self):
        assert build_post_text(self._post()).startswith("user:77 — ")
