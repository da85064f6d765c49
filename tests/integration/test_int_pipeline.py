# tests/integration/test_int_pipeline.py — v1
"""End-to-end: collect -> artifact -> ingest -> posts -> embed -> search.

Runs every worker against one SQLite store, a local artifact directory and
the in-memory vector index. The social-graph API is served by an httpx
MockTransport so the real client (parsing, pagination) is exercised.
"""

from __future__ import annotations

import httpx
import pytest

from peoplefinder.config.settings import Settings
from peoplefinder.db.store_factory import create_store
from peoplefinder.graph.artifact import read_artifact, write_artifact
from peoplefinder.graph.collector import GraphCollector
from peoplefinder.graph.ingestor import GraphIngestor
from peoplefinder.posts.embed_worker import run_post_embed_worker
from peoplefinder.posts.fetch_worker import PostFetchWorkerConfig, run_post_fetch_worker
from peoplefinder.search.people_search import PeopleSearch
from peoplefinder.search.recent_posts import recent_posts
from peoplefinder.source.x_client import XApiClient
from peoplefinder.storage.writer_factory import create_writer

PROFILES = {
    "bob": {"id": "200", "username": "bob", "name": "Bob Builder",
            "description": "Builds bridges", "public_metrics": {"followers_count": 30}},
    "carol": {"id": "300", "username": "carol", "name": "Carol Coder",
              "description": "Writes compilers", "public_metrics": {"followers_count": 90}},
}


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/2/users/100/following":
        if request.url.params.get("pagination_token") == "p2":
            return httpx.Response(200, json={
                "data": [{"id": "300", "username": "carol"}, {"id": "999", "username": "ghost"}],
                "meta": {"result_count": 2},
            })
        return httpx.Response(200, json={
            "data": [{"id": "200", "username": "bob"}],
            "meta": {"result_count": 1, "next_token": "p2"},
        })
    if path.startswith("/2/users/by/username/"):
        handle = path.rsplit("/", 1)[-1].lower()
        if handle in PROFILES:
            return httpx.Response(200, json={"data": PROFILES[handle]})
        return httpx.Response(200, json={"errors": [{"title": "Not Found Error"}]})
    if path.endswith("/tweets"):
        user_id = path.split("/")[3]
        return httpx.Response(200, json={
            "data": [
                {"id": f"{user_id}1", "text": f"latest from {user_id}",
                 "created_at": "2024-03-02T00:00:00.000Z"},
                {"id": f"{user_id}0", "text": f"older from {user_id}",
                 "created_at": "2024-03-01T00:00:00.000Z"},
            ],
            "meta": {"result_count": 2, "newest_id": f"{user_id}1", "oldest_id": f"{user_id}0"},
        })
    return httpx.Response(404, json={"title": "Not Found"})


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        db_backend="sqlite",
        sqlite_path=tmp_path / "pipeline.db",
        first_degree_path=str(tmp_path / "artifacts" / "first-degree.json"),
        x_api_bearer_token="test-token",
        x_api_base_url="https://api.test/2",
    )


class TestPipeline:
    @pytest.mark.asyncio
    async def test_full_run(self, settings, limiter, embedder, vector_store):
        store = create_store(settings)
        seed = await store.add_person("Seed", "seed", is_seed=True, x_user_id="100", x_username="seed")
        writer = create_writer(settings)
        client = XApiClient.from_settings(settings, transport=httpx.MockTransport(_handler))

        try:
            artifact = await GraphCollector(store, client, limiter).run()
            assert artifact.usernames == ["bob", "carol", "ghost"]
            await write_artifact(writer, settings.first_degree_path, artifact)

            loaded = await read_artifact(writer, settings.first_degree_path)
            ingest = await GraphIngestor(store, client, limiter, embedder, vector_store).run(loaded)
            assert ingest.inserted == 2
            assert ingest.skipped == 1
            assert ingest.edges_inserted == 2
            assert len(await store.list_edges()) == 2

            # Re-ingesting the same artifact adds nothing
            again = await GraphIngestor(store, client, limiter, embedder, vector_store).run(loaded)
            assert again.inserted == 0
            assert again.edges_inserted == 0

            fetch = await run_post_fetch_worker(
                PostFetchWorkerConfig(shard_key="all"), store, client, limiter
            )
            assert fetch.targets == 3
            assert fetch.posts_stored == 6
            assert (await store.get_progress(seed)).initial_sync_complete is True

            embedded = await run_post_embed_worker(store, embedder, vector_store)
            assert embedded.embedded == 6
            assert len(vector_store.namespaces["messages"]) == 6
        finally:
            await client.aclose()

        results = await PeopleSearch(store, embedder, vector_store).search(
            "Carol Coder\n@carol\nWrites compilers"
        )
        assert results[0].handle == "carol"
        assert results[0].followers == 90

        posts = await recent_posts(store, "carol", limit=1)
        assert [p.text for p in posts] == ["latest from 300"]
        await store.close()
