# tests/unit/db/test_sqlite_store.py — v1
"""Tests for db/sqlite_store.py — upsert rules shared by all backends."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from peoplefinder.core.models import ProgressUpdate, ShardTarget


class TestPeople:
    @pytest.mark.asyncio
    async def test_profile_upsert_is_idempotent(self, store, make_profile):
        profile = make_profile("1001", "alice", followers=10)
        first_id, created = await store.upsert_profile(profile)
        second_id, created_again = await store.upsert_profile(profile)

        assert created is True
        assert created_again is False
        assert first_id == second_id
        people = await store.list_people_with_external_id()
        assert len(people) == 1
        assert people[0].x_followers_count == 10

    @pytest.mark.asyncio
    async def test_profile_upsert_overwrites_fields(self, store, make_profile):
        pid, _ = await store.upsert_profile(make_profile("1001", "alice", followers=10))
        await store.upsert_profile(
            make_profile("1001", "alice_new", followers=99, location="Berlin")
        )
        person = await store.get_person(pid)
        assert person.x_username == "alice_new"
        assert person.x_followers_count == 99
        assert person.x_location == "Berlin"

    @pytest.mark.asyncio
    async def test_profile_attaches_to_local_handle(self, store, make_profile):
        local_id = await store.add_person("Alice", "@Alice")
        pid, created = await store.upsert_profile(make_profile("1001", "alice"))
        assert pid == local_id
        assert created is False

    @pytest.mark.asyncio
    async def test_known_handles_lowercased(self, store, make_profile):
        await store.add_person("Seed", "@SeedUser", is_seed=True)
        pid, _ = await store.upsert_profile(make_profile("1001", "Alice"))
        handles = await store.known_handles()
        assert handles["alice"] == pid
        assert "seeduser" in handles

    @pytest.mark.asyncio
    async def test_seed_people_need_external_id(self, store):
        await store.add_person("No Id", "noid", is_seed=True)
        seed = await store.add_person("Seed", "seed", is_seed=True, x_user_id="1", x_username="seed")
        await store.add_person("Other", "other", x_user_id="2", x_username="other")
        seeds = await store.list_seed_people()
        assert [s.id for s in seeds] == [seed]

    @pytest.mark.asyncio
    async def test_resolve_person(self, store):
        pid = await store.add_person("Bob", None, x_user_id="42", x_username="Bobby")
        assert (await store.resolve_person("42")).id == pid
        assert (await store.resolve_person("@bobby")).id == pid
        assert await store.resolve_person("nobody") is None

    @pytest.mark.asyncio
    async def test_people_needing_refresh(self, store, make_profile):
        pending = await store.add_person("Pending", "pending")
        fresh, _ = await store.upsert_profile(make_profile("1", "fresh"))
        await store.add_person("No handle")
        now = datetime.now(timezone.utc)

        due = await store.list_people_needing_refresh(now - timedelta(days=7))
        assert [p.id for p in due] == [pending]

        due_later = await store.list_people_needing_refresh(now + timedelta(days=1))
        assert [p.id for p in due_later] == [pending, fresh]

    @pytest.mark.asyncio
    async def test_fetch_people_by_external_ids(self, store, make_profile):
        await store.upsert_profile(make_profile("1", "a"))
        await store.upsert_profile(make_profile("2", "b"))
        found = await store.fetch_people_by_external_ids(["2", "3", "2"])
        assert list(found) == ["2"]
        assert found["2"].x_username == "b"


class TestEdges:
    @pytest.mark.asyncio
    async def test_duplicate_edges_are_noops(self, store):
        a = await store.add_person("A", "a")
        b = await store.add_person("B", "b")
        c = await store.add_person("C", "c")
        assert await store.upsert_edges([a, b], c) == 2
        assert await store.upsert_edges([a, b, a], c) == 0
        assert await store.list_edges() == [(a, c), (b, c)]

    @pytest.mark.asyncio
    async def test_self_edge_skipped(self, store):
        a = await store.add_person("A", "a")
        assert await store.upsert_edges([a], a) == 0

    @pytest.mark.asyncio
    async def test_large_batch_is_chunked(self, store):
        target = await store.add_person("T", "t")
        followers = [await store.add_person(f"F{i}", f"f{i}") for i in range(250)]
        assert await store.upsert_edges(followers, target) == 250
        assert len(await store.list_edges()) == 250


class TestPosts:
    async def _target(self, store) -> ShardTarget:
        pid = await store.add_person("A", "a", x_user_id="77", x_username="a")
        return ShardTarget(id=pid, x_user_id="77", x_username="a")

    @pytest.mark.asyncio
    async def test_same_text_keeps_embedding(self, store, make_post):
        target = await self._target(store)
        await store.upsert_posts(target, [make_post("1", "hello", likes=1)])
        await store.mark_posts_embedded(["1"], "model-v1")

        await store.upsert_posts(target, [make_post("1", "hello", likes=50)])
        embedded_at, error, version = await store.get_post_embedding("1")
        assert embedded_at is not None
        assert error is None
        assert version == "model-v1"

    @pytest.mark.asyncio
    async def test_changed_text_clears_embedding(self, store, make_post):
        target = await self._target(store)
        await store.upsert_posts(target, [make_post("1", "hello")])
        await store.mark_posts_embedded(["1"], "model-v1")

        await store.upsert_posts(target, [make_post("1", "hello, edited")])
        assert await store.get_post_embedding("1") == (None, None, None)

    @pytest.mark.asyncio
    async def test_pending_posts_newest_first(self, store, make_post):
        target = await self._target(store)
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        await store.upsert_posts(target, [
            make_post("1", "old", created_at=base),
            make_post("2", "new", created_at=base + timedelta(days=2)),
            make_post("3", "mid", created_at=base + timedelta(days=1)),
        ])
        await store.mark_posts_embedded(["3"], "model-v1")
        pending = await store.fetch_pending_posts(10)
        assert [p.post_id for p in pending] == ["2", "1"]
        assert pending[0].x_username == "a"

    @pytest.mark.asyncio
    async def test_mark_with_error(self, store, make_post):
        target = await self._target(store)
        await store.upsert_posts(target, [make_post("1")])
        await store.mark_posts_embedded(["1"], "model-v1", error="index down")
        assert await store.get_post_embedding("1") == (None, "index down", None)

    @pytest.mark.asyncio
    async def test_recent_posts(self, store, make_post):
        target = await self._target(store)
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        await store.upsert_posts(target, [
            make_post(str(i), f"post {i}", created_at=base + timedelta(hours=i)) for i in range(5)
        ])
        recent = await store.recent_posts(target.id, 2)
        assert [p.post_id for p in recent] == ["4", "3"]

    @pytest.mark.asyncio
    async def test_shard_targets_partition(self, store):
        ids = [await store.add_person(f"P{i}", f"p{i}", x_user_id=str(i)) for i in range(6)]
        shard0 = await store.list_shard_targets(0, 2)
        shard1 = await store.list_shard_targets(1, 2)
        assert {t.id for t in shard0} | {t.id for t in shard1} == set(ids)
        assert not {t.id for t in shard0} & {t.id for t in shard1}
        assert all(t.id % 2 == 0 for t in shard0)
        assert [t.id for t in shard0] == sorted(t.id for t in shard0)
        assert len(await store.list_shard_targets(0, 1, limit=4)) == 4


class TestProgress:
    @pytest.mark.asyncio
    async def test_running_then_idle(self, store):
        pid = await store.add_person("A", "a", x_user_id="1")
        await store.mark_progress(pid, "w", "running", ProgressUpdate(run_started=True))
        progress = await store.get_progress(pid)
        assert progress.status == "running"
        assert progress.last_run_started_at is not None
        assert progress.last_run_finished_at is None

        await store.mark_progress(
            pid, "w", "idle",
            ProgressUpdate(total_fetched_delta=20, newest_id="n1", oldest_id="o1"),
        )
        progress = await store.get_progress(pid)
        assert progress.status == "idle"
        assert progress.total_fetched == 20
        assert progress.last_run_finished_at is not None

    @pytest.mark.asyncio
    async def test_total_is_non_decreasing_and_cursors_kept(self, store):
        pid = await store.add_person("A", "a", x_user_id="1")
        await store.mark_progress(
            pid, "w", "idle", ProgressUpdate(total_fetched_delta=10, newest_id="n1", oldest_id="o1")
        )
        await store.mark_progress(pid, "w", "idle", ProgressUpdate(total_fetched_delta=5))
        progress = await store.get_progress(pid)
        assert progress.total_fetched == 15
        assert progress.newest_post_id == "n1"
        assert progress.oldest_post_id == "o1"

    @pytest.mark.asyncio
    async def test_initial_sync_never_reverts(self, store):
        pid = await store.add_person("A", "a", x_user_id="1")
        await store.mark_progress(pid, "w", "idle", ProgressUpdate(had_full_sync=True))
        await store.mark_progress(pid, "w", "error", ProgressUpdate(error="boom"))
        progress = await store.get_progress(pid)
        assert progress.initial_sync_complete is True
        assert progress.status == "error"
        assert progress.last_error == "boom"

    @pytest.mark.asyncio
    async def test_missing(self, store):
        assert await store.get_progress(999) is None
