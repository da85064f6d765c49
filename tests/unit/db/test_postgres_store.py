# tests/unit/db/test_postgres_store.py — v1
"""Tests for db/postgres_store.py and db/store_factory.py — no live server.

The asyncpg pool is replaced by a stand-in whose connection records the
SQL it receives.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest

from peoplefinder.config.settings import ConfigurationError, Settings
from peoplefinder.db.base_store import EDGE_CHUNK_SIZE
from peoplefinder.db.postgres_store import _SCHEMA, PostgresRelationalStore, _inserted_count
from peoplefinder.db.sqlite_store import SqliteRelationalStore
from peoplefinder.db.store_factory import create_store


def _store_with(conn: MagicMock) -> PostgresRelationalStore:
    @asynccontextmanager
    async def acquire():
        yield conn

    pool = MagicMock()
    pool.acquire = acquire
    pool.close = AsyncMock()
    store = PostgresRelationalStore("postgresql://test/db")
    store._pool = pool
    return store


class TestInsertedCount:
    @pytest.mark.parametrize("status, expected", [
        ("INSERT 0 3", 3),
        ("INSERT 0 0", 0),
        ("", 0),
        (None, 0),
    ])
    def test_parses_command_tag(self, status, expected):
        assert _inserted_count(status) == expected


class TestPostgresRelationalStore:
    def test_empty_dsn_rejected(self):
        with pytest.raises(ValueError):
            PostgresRelationalStore("  ")

    @pytest.mark.asyncio
    async def test_upsert_edges_chunks_and_counts(self):
        conn = MagicMock()
        conn.execute = AsyncMock(side_effect=lambda sql, ids, target: f"INSERT 0 {len(ids)}")
        store = _store_with(conn)

        inserted = await store.upsert_edges(range(1, EDGE_CHUNK_SIZE + 6), 9999)

        assert inserted == EDGE_CHUNK_SIZE + 5
        assert conn.execute.await_count == 2
        assert "ON CONFLICT DO NOTHING" in conn.execute.await_args_list[0].args[0]

    @pytest.mark.asyncio
    async def test_self_edge_never_sent(self):
        conn = MagicMock()
        conn.execute = AsyncMock()
        store = _store_with(conn)
        assert await store.upsert_edges([5, 5], 5) == 0
        conn.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_person_converts_topic_array(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(return_value=[
            {"id": 3, "name": "Ada", "x_user_id": "1", "derived_topics": ("ml", "rust")},
        ])
        store = _store_with(conn)

        person = await store.get_person(3)

        assert person.derived_topics == ["ml", "rust"]
        assert conn.fetch.await_args.args[1] == 3

    @pytest.mark.asyncio
    async def test_known_handles_lowercased(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(return_value=[
            {"id": 1, "username": "@alice"},
            {"id": 2, "username": None},
        ])
        assert await _store_with(conn).known_handles() == {"alice": 1}

    @pytest.mark.asyncio
    async def test_ensure_schema_runs_in_transaction(self):
        entered: list[bool] = []

        @asynccontextmanager
        async def transaction():
            entered.append(True)
            yield

        conn = MagicMock()
        conn.transaction = transaction
        conn.execute = AsyncMock()

        await _store_with(conn).ensure_schema()

        assert entered == [True]
        conn.execute.assert_awaited_once_with(_SCHEMA)
        assert "CREATE TABLE IF NOT EXISTS following" in _SCHEMA

    @pytest.mark.asyncio
    async def test_close_releases_pool(self):
        store = _store_with(MagicMock())
        pool = store._pool
        await store.close()
        pool.close.assert_awaited_once()
        assert store._pool is None


class TestCreateStore:
    def test_sqlite(self, tmp_path):
        settings = Settings(_env_file=None, db_backend="sqlite", sqlite_path=tmp_path / "x.db")
        store = create_store(settings)
        assert isinstance(store, SqliteRelationalStore)
        asyncio.run(store.close())

    def test_postgres(self):
        settings = Settings(_env_file=None, database_url="postgresql://test/db")
        assert isinstance(create_store(settings), PostgresRelationalStore)

    def test_postgres_requires_url(self):
        with pytest.raises(ConfigurationError, match="DATABASE_URL"):
            create_store(Settings(_env_file=None, database_url=""))
