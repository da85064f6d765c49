# src/db/postgres_store.py — v1
"""PostgreSQL relational store (DB_BACKEND=postgres) on asyncpg.

The pool is created lazily on first use. ensure_schema() creates the
logical schema when it is missing; real deployments manage it with
migrations.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

import asyncpg

from peoplefinder.core.models import (
    FetchProgress,
    FetchStatus,
    PendingPost,
    PersonRow,
    ProgressUpdate,
    ShardTarget,
    StoredPost,
    XPost,
    XProfile,
)
from peoplefinder.db.base_store import (
    EDGE_CHUNK_SIZE,
    POST_COLUMNS,
    PROFILE_COLUMNS,
    TERMINAL_STATUSES,
    BaseRelationalStore,
    chunked,
    post_values,
    profile_values,
)
from peoplefinder.db.rows import first_row, to_rows

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS people (
    id BIGSERIAL PRIMARY KEY,
    name TEXT,
    handle TEXT,
    is_seed BOOLEAN NOT NULL DEFAULT FALSE,
    x_user_id TEXT UNIQUE,
    x_username TEXT,
    x_description TEXT,
    x_location TEXT,
    x_url TEXT,
    x_verified BOOLEAN,
    x_verified_type TEXT,
    x_followers_count INTEGER,
    x_following_count INTEGER,
    x_listed_count INTEGER,
    x_post_count INTEGER,
    x_created_at TIMESTAMPTZ,
    profile_image_url TEXT,
    derived_role TEXT,
    derived_topics TEXT[],
    derived_summary TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    last_refreshed_at TIMESTAMPTZ
);
CREATE INDEX IF NOT EXISTS idx_people_x_username ON people (LOWER(x_username));
CREATE INDEX IF NOT EXISTS idx_people_handle ON people (LOWER(handle));

CREATE TABLE IF NOT EXISTS following (
    follower_id BIGINT NOT NULL REFERENCES people(id),
    following_id BIGINT NOT NULL REFERENCES people(id),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (follower_id, following_id)
);

CREATE TABLE IF NOT EXISTS posts (
    post_id TEXT PRIMARY KEY,
    person_id BIGINT NOT NULL REFERENCES people(id),
    x_user_id TEXT NOT NULL,
    text TEXT NOT NULL,
    lang TEXT,
    like_count INTEGER,
    reply_count INTEGER,
    repost_count INTEGER,
    quote_count INTEGER,
    posted_at TIMESTAMPTZ NOT NULL,
    fetched_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    conversation_id TEXT,
    in_reply_to_user_id TEXT,
    referenced_post_id TEXT,
    raw_payload JSONB,
    embedded_at TIMESTAMPTZ,
    embedding_error TEXT,
    embedding_version TEXT
);
CREATE INDEX IF NOT EXISTS idx_posts_person ON posts (person_id, posted_at DESC);
CREATE INDEX IF NOT EXISTS idx_posts_pending ON posts (posted_at DESC) WHERE embedded_at IS NULL;

CREATE TABLE IF NOT EXISTS post_fetch_progress (
    person_id BIGINT PRIMARY KEY REFERENCES people(id),
    shard_key TEXT NOT NULL,
    status TEXT NOT NULL,
    total_fetched INTEGER NOT NULL DEFAULT 0,
    newest_post_id TEXT,
    oldest_post_id TEXT,
    last_run_started_at TIMESTAMPTZ,
    last_run_finished_at TIMESTAMPTZ,
    last_error TEXT,
    initial_sync_complete BOOLEAN NOT NULL DEFAULT FALSE,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_PERSON_SELECT = """
SELECT id, name, handle, is_seed, x_user_id, x_username, x_description,
       x_location, x_url, x_verified, x_verified_type, x_followers_count,
       x_following_count, x_listed_count, x_post_count, profile_image_url,
       derived_role, derived_topics, derived_summary, last_refreshed_at
FROM people
"""

_PROGRESS_UPSERT = """
INSERT INTO post_fetch_progress (
    person_id, shard_key, status, total_fetched, newest_post_id,
    oldest_post_id, last_run_started_at, last_run_finished_at, last_error,
    initial_sync_complete, updated_at
) VALUES (
    $1, $2, $3, $4, $5, $6,
    CASE WHEN $7 THEN NOW() ELSE NULL END,
    CASE WHEN $8 THEN NOW() ELSE NULL END,
    $9, $10, NOW()
)
ON CONFLICT (person_id) DO UPDATE SET
    shard_key = EXCLUDED.shard_key,
    status = EXCLUDED.status,
    total_fetched = post_fetch_progress.total_fetched + EXCLUDED.total_fetched,
    newest_post_id = COALESCE(EXCLUDED.newest_post_id, post_fetch_progress.newest_post_id),
    oldest_post_id = COALESCE(EXCLUDED.oldest_post_id, post_fetch_progress.oldest_post_id),
    last_run_started_at = COALESCE(EXCLUDED.last_run_started_at, post_fetch_progress.last_run_started_at),
    last_run_finished_at = COALESCE(EXCLUDED.last_run_finished_at, post_fetch_progress.last_run_finished_at),
    last_error = EXCLUDED.last_error,
    initial_sync_complete = post_fetch_progress.initial_sync_complete OR EXCLUDED.initial_sync_complete,
    updated_at = NOW()
"""


def _person(row: dict[str, Any]) -> PersonRow:
    if row.get("derived_topics") is not None:
        row["derived_topics"] = list(row["derived_topics"])
    return PersonRow.model_validate(row)


def _inserted_count(status: str) -> int:
    """Row count from an asyncpg command tag such as 'INSERT 0 3'."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class PostgresRelationalStore(BaseRelationalStore):
    """asyncpg-backed relational store."""

    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 5) -> None:
        self._dsn = dsn.strip()
        if not self._dsn:
            raise ValueError("DATABASE_URL cannot be empty")
        self._min_size = min_size
        self._max_size = max_size
        self._pool: asyncpg.Pool | None = None
        self._init_lock = asyncio.Lock()

    async def _ensure_pool(self) -> asyncpg.Pool:
        async with self._init_lock:
            if self._pool is None:
                self._pool = await asyncpg.create_pool(
                    dsn=self._dsn,
                    min_size=self._min_size,
                    max_size=self._max_size,
                    command_timeout=60.0,
                )
        return self._pool

    async def _fetch(self, sql: str, *params: Any) -> list[dict[str, Any]]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            return to_rows(await conn.fetch(sql, *params))

    async def _execute(self, sql: str, *params: Any) -> str:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            return await conn.execute(sql, *params)

    async def ensure_schema(self) -> None:
        """Create the logical schema if it does not exist."""
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(_SCHEMA)
        logger.info("Relational schema ensured")

    # --- People ---

    async def add_person(
        self,
        name: str | None = None,
        handle: str | None = None,
        *,
        is_seed: bool = False,
        x_user_id: str | None = None,
        x_username: str | None = None,
    ) -> int:
        row = first_row(await self._fetch(
            """INSERT INTO people (name, handle, is_seed, x_user_id, x_username)
               VALUES ($1, $2, $3, $4, $5)
               RETURNING id""",
            name, handle, is_seed, x_user_id, x_username,
        ))
        return int(row["id"])

    async def get_person(self, person_id: int) -> PersonRow | None:
        row = first_row(await self._fetch(f"{_PERSON_SELECT} WHERE id = $1", person_id))
        return _person(row) if row else None

    async def list_seed_people(self) -> list[PersonRow]:
        rows = await self._fetch(
            f"{_PERSON_SELECT} WHERE is_seed AND x_user_id IS NOT NULL ORDER BY id"
        )
        return [_person(r) for r in rows]

    async def known_handles(self) -> dict[str, int]:
        rows = await self._fetch(
            """SELECT id,
                      LOWER(COALESCE(NULLIF(x_username, ''), NULLIF(handle, ''))) AS username
               FROM people
               WHERE x_username IS NOT NULL OR handle IS NOT NULL
               ORDER BY id"""
        )
        handles: dict[str, int] = {}
        for row in rows:
            if row["username"]:
                handles.setdefault(row["username"].lstrip("@"), row["id"])
        return handles

    async def find_person_id(self, x_user_id: str, username: str) -> int | None:
        row = first_row(await self._fetch(
            "SELECT id FROM people WHERE x_user_id = $1 LIMIT 1", x_user_id
        ))
        if row:
            return row["id"]
        row = first_row(await self._fetch(
            """SELECT id FROM people
               WHERE LOWER(x_username) = $1 OR LOWER(LTRIM(handle, '@')) = $1
               ORDER BY id LIMIT 1""",
            username.lstrip("@").lower(),
        ))
        return row["id"] if row else None

    async def upsert_profile(
        self, profile: XProfile, person_id: int | None = None
    ) -> tuple[int, bool]:
        values = profile_values(profile)
        params = [values[c] for c in PROFILE_COLUMNS]

        existing = first_row(await self._fetch(
            "SELECT id FROM people WHERE x_user_id = $1", profile.id
        ))
        target_id = existing["id"] if existing else person_id
        if target_id is None:
            target_id = await self.find_person_id(profile.id, profile.username)

        n = len(PROFILE_COLUMNS)
        if target_id is not None:
            assignments = ", ".join(
                f"{col} = ${i}" for i, col in enumerate(PROFILE_COLUMNS, start=1)
            )
            await self._execute(
                f"""UPDATE people SET {assignments},
                        handle = COALESCE(NULLIF(handle, ''), ${n + 1}),
                        updated_at = NOW(), last_refreshed_at = NOW()
                    WHERE id = ${n + 2}""",
                *params, profile.username, target_id,
            )
            return target_id, False

        columns = ", ".join(PROFILE_COLUMNS)
        placeholders = ", ".join(f"${i}" for i in range(1, n + 1))
        row = first_row(await self._fetch(
            f"""INSERT INTO people
                ({columns}, handle, is_seed, created_at, updated_at, last_refreshed_at)
                VALUES ({placeholders}, ${n + 1}, FALSE, NOW(), NOW(), NOW())
                RETURNING id""",
            *params, profile.username,
        ))
        return int(row["id"]), True

    async def list_people_with_external_id(self) -> list[PersonRow]:
        rows = await self._fetch(f"{_PERSON_SELECT} WHERE x_user_id IS NOT NULL ORDER BY id")
        return [_person(r) for r in rows]

    async def list_people_needing_refresh(
        self, refreshed_before: datetime, limit: int | None = None
    ) -> list[PersonRow]:
        rows = await self._fetch(
            f"""{_PERSON_SELECT}
                WHERE COALESCE(NULLIF(handle, ''), NULLIF(x_username, '')) IS NOT NULL
                  AND (x_user_id IS NULL
                       OR last_refreshed_at IS NULL
                       OR last_refreshed_at < $1)
                ORDER BY id
                LIMIT $2""",
            refreshed_before, limit,
        )
        return [_person(r) for r in rows]

    async def fetch_people_by_external_ids(
        self, x_user_ids: Iterable[str]
    ) -> dict[str, PersonRow]:
        ids = [i for i in dict.fromkeys(x_user_ids) if i]
        if not ids:
            return {}
        rows = await self._fetch(
            f"{_PERSON_SELECT} WHERE x_user_id = ANY($1::text[])", ids
        )
        return {r["x_user_id"]: _person(r) for r in rows}

    async def resolve_person(self, identifier: str) -> PersonRow | None:
        value = identifier.strip()
        if not value:
            return None
        row = first_row(await self._fetch(
            f"{_PERSON_SELECT} WHERE x_user_id = $1 LIMIT 1", value
        ))
        if row is None:
            row = first_row(await self._fetch(
                f"""{_PERSON_SELECT}
                    WHERE LOWER(x_username) = $1 OR LOWER(LTRIM(handle, '@')) = $1
                    ORDER BY id LIMIT 1""",
                value.lstrip("@").lower(),
            ))
        return _person(row) if row else None

    # --- Edges ---

    async def upsert_edges(
        self, follower_ids: Iterable[int], following_id: int
    ) -> int:
        followers = [f for f in dict.fromkeys(follower_ids) if f != following_id]
        inserted = 0
        for chunk in chunked(followers, EDGE_CHUNK_SIZE):
            status = await self._execute(
                """INSERT INTO following (follower_id, following_id)
                   SELECT unnest($1::bigint[]), $2
                   ON CONFLICT DO NOTHING""",
                list(chunk), following_id,
            )
            inserted += _inserted_count(status)
        return inserted

    async def list_edges(self) -> list[tuple[int, int]]:
        rows = await self._fetch(
            "SELECT follower_id, following_id FROM following ORDER BY follower_id, following_id"
        )
        return [(r["follower_id"], r["following_id"]) for r in rows]

    # --- Posts ---

    async def list_shard_targets(
        self, shard_index: int, shard_total: int, limit: int | None = None
    ) -> list[ShardTarget]:
        rows = await self._fetch(
            """SELECT id, x_user_id, x_username FROM people
               WHERE x_user_id IS NOT NULL AND MOD(id, $1) = $2
               ORDER BY id
               LIMIT $3""",
            shard_total, shard_index, limit,
        )
        return [ShardTarget.model_validate(r) for r in rows]

    async def upsert_posts(self, target: ShardTarget, posts: Sequence[XPost]) -> int:
        if not posts:
            return 0
        fetched_at = datetime.now(timezone.utc)
        columns = ", ".join(POST_COLUMNS)
        placeholders = ", ".join(
            f"${i}::jsonb" if col == "raw_payload" else f"${i}"
            for i, col in enumerate(POST_COLUMNS, start=1)
        )
        updates = ", ".join(
            f"{col} = EXCLUDED.{col}"
            for col in POST_COLUMNS
            if col not in ("post_id", "person_id", "x_user_id")
        )
        records = [
            [values[c] for c in POST_COLUMNS]
            for values in (post_values(target, post, fetched_at) for post in posts)
        ]
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.executemany(
                f"""INSERT INTO posts ({columns}) VALUES ({placeholders})
                    ON CONFLICT (post_id) DO UPDATE SET {updates},
                        embedded_at = CASE WHEN posts.text <> EXCLUDED.text
                                           THEN NULL ELSE posts.embedded_at END,
                        embedding_error = CASE WHEN posts.text <> EXCLUDED.text
                                               THEN NULL ELSE posts.embedding_error END,
                        embedding_version = CASE WHEN posts.text <> EXCLUDED.text
                                                 THEN NULL ELSE posts.embedding_version END""",
                records,
            )
        return len(records)

    async def fetch_pending_posts(self, limit: int) -> list[PendingPost]:
        rows = await self._fetch(
            """SELECT p.post_id, p.text, p.person_id, p.x_user_id, p.posted_at,
                      u.x_username, u.name
               FROM posts p
               LEFT JOIN people u ON u.id = p.person_id
               WHERE p.embedded_at IS NULL
               ORDER BY p.posted_at DESC
               LIMIT $1""",
            limit,
        )
        return [PendingPost.model_validate(r) for r in rows]

    async def mark_posts_embedded(
        self, post_ids: Sequence[str], version: str, error: str | None = None
    ) -> None:
        if not post_ids:
            return
        await self._execute(
            """UPDATE posts SET
                   embedded_at = CASE WHEN $2::text IS NULL THEN NOW() ELSE embedded_at END,
                   embedding_error = $2,
                   embedding_version = CASE WHEN $2::text IS NULL THEN $3 ELSE NULL END
               WHERE post_id = ANY($1::text[])""",
            list(post_ids), error, version,
        )

    async def get_post_embedding(
        self, post_id: str
    ) -> tuple[datetime | None, str | None, str | None] | None:
        row = first_row(await self._fetch(
            """SELECT embedded_at, embedding_error, embedding_version
               FROM posts WHERE post_id = $1""",
            post_id,
        ))
        if row is None:
            return None
        return row["embedded_at"], row["embedding_error"], row["embedding_version"]

    async def recent_posts(self, person_id: int, limit: int) -> list[StoredPost]:
        rows = await self._fetch(
            """SELECT p.post_id, p.text, p.posted_at, p.like_count, p.reply_count,
                      p.repost_count, p.quote_count, u.x_username, u.name
               FROM posts p
               LEFT JOIN people u ON u.id = p.person_id
               WHERE p.person_id = $1
               ORDER BY p.posted_at DESC
               LIMIT $2""",
            person_id, limit,
        )
        return [StoredPost.model_validate(r) for r in rows]

    # --- Progress ---

    async def mark_progress(
        self,
        person_id: int,
        shard_key: str,
        status: FetchStatus,
        update: ProgressUpdate | None = None,
    ) -> None:
        upd = update or ProgressUpdate()
        await self._execute(
            _PROGRESS_UPSERT,
            person_id,
            shard_key,
            status,
            max(upd.total_fetched_delta, 0),
            upd.newest_id,
            upd.oldest_id,
            upd.run_started,
            status in TERMINAL_STATUSES,
            upd.error,
            upd.had_full_sync,
        )

    async def get_progress(self, person_id: int) -> FetchProgress | None:
        row = first_row(await self._fetch(
            """SELECT person_id, shard_key, status, total_fetched, newest_post_id,
                      oldest_post_id, last_run_started_at, last_run_finished_at,
                      last_error, initial_sync_complete
               FROM post_fetch_progress WHERE person_id = $1""",
            person_id,
        ))
        return FetchProgress.model_validate(row) if row else None

    # --- Lifecycle ---

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
