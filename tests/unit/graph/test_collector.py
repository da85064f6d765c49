# tests/unit/graph/test_collector.py — v1
"""Tests for graph/collector.py and graph/artifact.py."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from peoplefinder.core.errors import ExternalApiError
from peoplefinder.core.models import EdgePage, EdgeTarget, PersonRow
from peoplefinder.graph.artifact import (
    ARTIFACT_VERSION,
    ArtifactError,
    BatchArtifact,
    EdgeIntent,
    read_artifact,
    write_artifact,
)
from peoplefinder.graph.collector import GraphCollector, sort_handles
from peoplefinder.storage.local_writer import LocalWriter


def _page(*usernames: str, cursor: str | None = None) -> EdgePage:
    targets = [EdgeTarget(id=str(i), username=u) for i, u in enumerate(usernames)]
    return EdgePage(targets=targets, next_cursor=cursor, result_count=len(targets))


def _store(seeds: list[PersonRow], known: dict[str, int] | None = None) -> AsyncMock:
    store = AsyncMock()
    store.list_seed_people.return_value = seeds
    store.known_handles.return_value = known or {}
    return store


SEED = PersonRow(id=1, name="Seed", is_seed=True, x_user_id="11", x_username="seed")


class TestGraphCollector:
    @pytest.mark.asyncio
    async def test_dedupes_across_pages(self, limiter):
        client = AsyncMock()
        client.get_following_page.side_effect = [
            _page("bob", "carol", cursor="c1"),
            _page("bob", cursor="c2"),
            _page(),
        ]
        artifact = await GraphCollector(_store([SEED]), client, limiter).run()

        assert artifact.usernames == ["bob", "carol"]
        assert artifact.edge_count == 2
        assert artifact.seeds_processed == 1
        assert artifact.total_api_requests == 3
        assert artifact.total_followings_fetched == 3
        assert [c.args for c in client.get_following_page.await_args_list] == [
            ("11", None), ("11", "c1"), ("11", "c2"),
        ]

    @pytest.mark.asyncio
    async def test_known_handles_yield_edges_only(self, limiter):
        client = AsyncMock()
        client.get_following_page.return_value = _page("Alice", "dave")
        artifact = await GraphCollector(
            _store([SEED], known={"alice": 5}), client, limiter
        ).run()

        assert artifact.usernames == ["dave"]
        assert [e.following_username for e in artifact.edges] == ["Alice", "dave"]

    @pytest.mark.asyncio
    async def test_failing_page_keeps_earlier_results(self, limiter):
        other = PersonRow(id=2, is_seed=True, x_user_id="22")
        client = AsyncMock()
        client.get_following_page.side_effect = [
            _page("bob", cursor="c1"),
            ExternalApiError(500, "oops"),
            _page("erin"),
        ]
        artifact = await GraphCollector(_store([SEED, other]), client, limiter).run()

        assert artifact.usernames == ["bob", "erin"]
        assert artifact.seeds_processed == 2
        assert {e.follower_db_id for e in artifact.edges} == {1, 2}

    @pytest.mark.asyncio
    async def test_page_cap(self, limiter):
        client = AsyncMock()
        client.get_following_page.return_value = _page("bob", cursor="more")
        artifact = await GraphCollector(
            _store([SEED]), client, limiter, max_pages_per_seed=2
        ).run()
        assert client.get_following_page.await_count == 2
        assert artifact.total_api_requests == 2

    @pytest.mark.asyncio
    async def test_no_seeds(self, limiter):
        client = AsyncMock()
        artifact = await GraphCollector(_store([]), client, limiter).run()
        assert artifact.usernames == []
        client.get_following_page.assert_not_awaited()

    def test_sort_handles_case_insensitive(self):
        assert sort_handles(["carol", "Bob", "alice"]) == ["alice", "Bob", "carol"]


class TestBatchArtifact:
    def test_camel_case_keys(self):
        artifact = BatchArtifact(
            usernames=["bob"],
            edges=[EdgeIntent(follower_db_id=1, follower_x_user_id="11", following_username="bob")],
        )
        doc = json.loads(artifact.to_json())
        assert doc["version"] == ARTIFACT_VERSION
        assert doc["uniqueNewUsernames"] == 1
        assert doc["edgeCount"] == 1
        assert doc["edges"][0] == {
            "followerDbId": 1, "followerXUserId": "11", "followingUsername": "bob",
        }

    @pytest.mark.asyncio
    async def test_write_then_read(self, tmp_path):
        writer = LocalWriter(tmp_path)
        artifact = BatchArtifact(seeds_processed=2, usernames=["bob", "carol"])
        await write_artifact(writer, "batch.json", artifact)
        loaded = await read_artifact(writer, "batch.json")
        assert loaded.usernames == ["bob", "carol"]
        assert loaded.seeds_processed == 2

    @pytest.mark.asyncio
    async def test_newer_version_rejected(self, tmp_path):
        writer = LocalWriter(tmp_path)
        await writer.write("batch.json", json.dumps({"version": ARTIFACT_VERSION + 1}))
        with pytest.raises(ArtifactError, match="newer"):
            await read_artifact(writer, "batch.json")

    @pytest.mark.asyncio
    async def test_invalid_document(self, tmp_path):
        writer = LocalWriter(tmp_path)
        await writer.write("batch.json", "not json")
        with pytest.raises(ArtifactError):
            await read_artifact(writer, "batch.json")

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            await read_artifact(LocalWriter(tmp_path), "absent.json")
