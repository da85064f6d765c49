# src/db/sqlite_store.py — v1
"""SQLite-based relational store (DB_BACKEND=sqlite).

Uses stdlib sqlite3, no external dependency. Meant for local runs and
tests; production uses the postgres backend. Timestamps are stored as
ISO-8601 UTC strings so they sort lexically.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

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
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT,
    handle TEXT,
    is_seed INTEGER NOT NULL DEFAULT 0,
    x_user_id TEXT UNIQUE,
    x_username TEXT,
    x_description TEXT,
    x_location TEXT,
    x_url TEXT,
    x_verified INTEGER,
    x_verified_type TEXT,
    x_followers_count INTEGER,
    x_following_count INTEGER,
    x_listed_count INTEGER,
    x_post_count INTEGER,
    x_created_at TEXT,
    profile_image_url TEXT,
    derived_role TEXT,
    derived_topics TEXT,
    derived_summary TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_refreshed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_people_x_username ON people(lower(x_username));
CREATE INDEX IF NOT EXISTS idx_people_handle ON people(lower(handle));

CREATE TABLE IF NOT EXISTS following (
    follower_id INTEGER NOT NULL REFERENCES people(id),
    following_id INTEGER NOT NULL REFERENCES people(id),
    created_at TEXT NOT NULL,
    PRIMARY KEY (follower_id, following_id)
);

CREATE TABLE IF NOT EXISTS posts (
    post_id TEXT PRIMARY KEY,
    person_id INTEGER NOT NULL REFERENCES people(id),
    x_user_id TEXT NOT NULL,
    text TEXT NOT NULL,
    lang TEXT,
    like_count INTEGER,
    reply_count INTEGER,
    repost_count INTEGER,
    quote_count INTEGER,
    posted_at TEXT NOT NULL,
    fetched_at TEXT NOT NULL,
    conversation_id TEXT,
    in_reply_to_user_id TEXT,
    referenced_post_id TEXT,
    raw_payload TEXT,
    embedded_at TEXT,
    embedding_error TEXT,
    embedding_version TEXT
);
CREATE INDEX IF NOT EXISTS idx_posts_person ON posts(person_id, posted_at);
CREATE INDEX IF NOT EXISTS idx_posts_pending ON posts(embedded_at, posted_at);

CREATE TABLE IF NOT EXISTS post_fetch_progress (
    person_id INTEGER PRIMARY KEY REFERENCES people(id),
    shard_key TEXT NOT NULL,
    status TEXT NOT NULL,
    total_fetched INTEGER NOT NULL DEFAULT 0,
    newest_post_id TEXT,
    oldest_post_id TEXT,
    last_run_started_at TEXT,
    last_run_finished_at TEXT,
    last_error TEXT,
    initial_sync_complete INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
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
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(person_id) DO UPDATE SET
    shard_key = excluded.shard_key,
    status = excluded.status,
    total_fetched = post_fetch_progress.total_fetched + excluded.total_fetched,
    newest_post_id = COALESCE(excluded.newest_post_id, post_fetch_progress.newest_post_id),
    oldest_post_id = COALESCE(excluded.oldest_post_id, post_fetch_progress.oldest_post_id),
    last_run_started_at = COALESCE(excluded.last_run_started_at, post_fetch_progress.last_run_started_at),
    last_run_finished_at = COALESCE(excluded.last_run_finished_at, post_fetch_progress.last_run_finished_at),
    last_error = excluded.last_error,
    initial_sync_complete = post_fetch_progress.initial_sync_complete OR excluded.initial_sync_complete,
    updated_at = excluded.updated_at
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _bind(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


def _person(row: dict[str, Any]) -> PersonRow:
    topics = row.get("derived_topics")
    if isinstance(topics, str):
        try:
            row["derived_topics"] = json.loads(topics)
        except json.JSONDecodeError:
            logger.warning("Person %s has unreadable derived_topics", row.get("id"))
            row["derived_topics"] = None
    return PersonRow.model_validate(row)


class SqliteRelationalStore(BaseRelationalStore):
    """SQLite-backed relational store."""

    def __init__(self, db_path: Path | str) -> None:
        if str(db_path) == ":memory:":
            self._db_path = None
            self._conn = sqlite3.connect(":memory:")
        else:
            self._db_path = Path(db_path).expanduser()
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path))
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)

    def _fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        cursor = self._conn.execute(sql, [_bind(p) for p in params])
        return to_rows(cursor.fetchall())

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
        now = _now()
        cursor = self._conn.execute(
            """INSERT INTO people
               (name, handle, is_seed, x_user_id, x_username, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (name, handle, int(is_seed), x_user_id, x_username, now, now),
        )
        self._conn.commit()
        return int(cursor.lastrowid)

    async def get_person(self, person_id: int) -> PersonRow | None:
        row = first_row(self._fetch(f"{_PERSON_SELECT} WHERE id = ?", (person_id,)))
        return _person(row) if row else None

    async def list_seed_people(self) -> list[PersonRow]:
        rows = self._fetch(
            f"{_PERSON_SELECT} WHERE is_seed = 1 AND x_user_id IS NOT NULL ORDER BY id"
        )
        return [_person(r) for r in rows]

    async def known_handles(self) -> dict[str, int]:
        rows = self._fetch(
            """SELECT id,
                      lower(COALESCE(NULLIF(x_username, ''), NULLIF(handle, ''))) AS username
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
        row = first_row(self._fetch(
            "SELECT id FROM people WHERE x_user_id = ? LIMIT 1", (x_user_id,)
        ))
        if row:
            return row["id"]
        normalized = username.lstrip("@").lower()
        row = first_row(self._fetch(
            """SELECT id FROM people
               WHERE lower(x_username) = ? OR lower(ltrim(handle, '@')) = ?
               ORDER BY id LIMIT 1""",
            (normalized, normalized),
        ))
        return row["id"] if row else None

    async def upsert_profile(
        self, profile: XProfile, person_id: int | None = None
    ) -> tuple[int, bool]:
        values = profile_values(profile)
        now = _now()

        existing = first_row(self._fetch(
            "SELECT id FROM people WHERE x_user_id = ?", (profile.id,)
        ))
        target_id = existing["id"] if existing else person_id
        if target_id is None:
            target_id = await self.find_person_id(profile.id, profile.username)

        if target_id is not None:
            assignments = ", ".join(f"{col} = ?" for col in PROFILE_COLUMNS)
            self._conn.execute(
                f"""UPDATE people SET {assignments},
                        handle = COALESCE(NULLIF(handle, ''), ?),
                        updated_at = ?, last_refreshed_at = ?
                    WHERE id = ?""",
                [_bind(values[c]) for c in PROFILE_COLUMNS]
                + [profile.username, now, now, target_id],
            )
            self._conn.commit()
            return target_id, False

        columns = ", ".join(PROFILE_COLUMNS)
        placeholders = ", ".join("?" for _ in PROFILE_COLUMNS)
        cursor = self._conn.execute(
            f"""INSERT INTO people
                ({columns}, handle, is_seed, created_at, updated_at, last_refreshed_at)
                VALUES ({placeholders}, ?, 0, ?, ?, ?)""",
            [_bind(values[c]) for c in PROFILE_COLUMNS]
            + [profile.username, now, now, now],
        )
        self._conn.commit()
        return int(cursor.lastrowid), True

    async def list_people_with_external_id(self) -> list[PersonRow]:
        rows = self._fetch(f"{_PERSON_SELECT} WHERE x_user_id IS NOT NULL ORDER BY id")
        return [_person(r) for r in rows]

    async def list_people_needing_refresh(
        self, refreshed_before: datetime, limit: int | None = None
    ) -> list[PersonRow]:
        sql = f"""{_PERSON_SELECT}
            WHERE COALESCE(NULLIF(handle, ''), NULLIF(x_username, '')) IS NOT NULL
              AND (x_user_id IS NULL
                   OR last_refreshed_at IS NULL
                   OR last_refreshed_at < ?)
            ORDER BY id"""
        params: list[Any] = [refreshed_before]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [_person(r) for r in self._fetch(sql, params)]

    async def fetch_people_by_external_ids(
        self, x_user_ids: Iterable[str]
    ) -> dict[str, PersonRow]:
        ids = [i for i in dict.fromkeys(x_user_ids) if i]
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        rows = self._fetch(
            f"{_PERSON_SELECT} WHERE x_user_id IN ({placeholders})", ids
        )
        return {r["x_user_id"]: _person(r) for r in rows}

    async def resolve_person(self, identifier: str) -> PersonRow | None:
        value = identifier.strip()
        if not value:
            return None
        row = first_row(self._fetch(
            f"{_PERSON_SELECT} WHERE x_user_id = ? LIMIT 1", (value,)
        ))
        if row is None:
            normalized = value.lstrip("@").lower()
            row = first_row(self._fetch(
                f"""{_PERSON_SELECT}
                    WHERE lower(x_username) = ? OR lower(ltrim(handle, '@')) = ?
                    ORDER BY id LIMIT 1""",
                (normalized, normalized),
            ))
        return _person(row) if row else None

    # --- Edges ---

    async def upsert_edges(
        self, follower_ids: Iterable[int], following_id: int
    ) -> int:
        followers = [f for f in dict.fromkeys(follower_ids) if f != following_id]
        if not followers:
            return 0
        now = _now()
        before = self._conn.total_changes
        for chunk in chunked(followers, EDGE_CHUNK_SIZE):
            self._conn.executemany(
                """INSERT OR IGNORE INTO following (follower_id, following_id, created_at)
                   VALUES (?, ?, ?)""",
                [(f, following_id, now) for f in chunk],
            )
        self._conn.commit()
        return self._conn.total_changes - before

    async def list_edges(self) -> list[tuple[int, int]]:
        rows = self._fetch(
            "SELECT follower_id, following_id FROM following ORDER BY follower_id, following_id"
        )
        return [(r["follower_id"], r["following_id"]) for r in rows]

    # --- Posts ---

    async def list_shard_targets(
        self, shard_index: int, shard_total: int, limit: int | None = None
    ) -> list[ShardTarget]:
        sql = """SELECT id, x_user_id, x_username FROM people
                 WHERE x_user_id IS NOT NULL AND id % ? = ?
                 ORDER BY id"""
        params: list[Any] = [shard_total, shard_index]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [ShardTarget.model_validate(r) for r in self._fetch(sql, params)]

    async def upsert_posts(self, target: ShardTarget, posts: Sequence[XPost]) -> int:
        if not posts:
            return 0
        fetched_at = datetime.now(timezone.utc)
        columns = ", ".join(POST_COLUMNS)
        placeholders = ", ".join("?" for _ in POST_COLUMNS)
        updates = ", ".join(
            f"{col} = excluded.{col}"
            for col in POST_COLUMNS
            if col not in ("post_id", "person_id", "x_user_id")
        )
        self._conn.executemany(
            f"""INSERT INTO posts ({columns}) VALUES ({placeholders})
                ON CONFLICT(post_id) DO UPDATE SET {updates},
                    embedded_at = CASE WHEN posts.text <> excluded.text
                                       THEN NULL ELSE posts.embedded_at END,
                    embedding_error = CASE WHEN posts.text <> excluded.text
                                           THEN NULL ELSE posts.embedding_error END,
                    embedding_version = CASE WHEN posts.text <> excluded.text
                                             THEN NULL ELSE posts.embedding_version END""",
            [
                [_bind(values[c]) for c in POST_COLUMNS]
                for values in (post_values(target, post, fetched_at) for post in posts)
            ],
        )
        self._conn.commit()
        return len(posts)

    async def fetch_pending_posts(self, limit: int) -> list[PendingPost]:
        rows = self._fetch(
            """SELECT p.post_id, p.text, p.person_id, p.x_user_id, p.posted_at,
                      u.x_username, u.name
               FROM posts p
               LEFT JOIN people u ON u.id = p.person_id
               WHERE p.embedded_at IS NULL
               ORDER BY p.posted_at DESC
               LIMIT ?""",
            (limit,),
        )
        return [PendingPost.model_validate(r) for r in rows]

    async def mark_posts_embedded(
        self, post_ids: Sequence[str], version: str, error: str | None = None
    ) -> None:
        if not post_ids:
            return
        now = _now()
        placeholders = ", ".join("?" for _ in post_ids)
        self._conn.execute(
            f"""UPDATE posts SET
                    embedded_at = CASE WHEN ? IS NULL THEN ? ELSE embedded_at END,
                    embedding_error = ?,
                    embedding_version = CASE WHEN ? IS NULL THEN ? ELSE NULL END
                WHERE post_id IN ({placeholders})""",
            [error, now, error, error, version, *post_ids],
        )
        self._conn.commit()

    async def get_post_embedding(
        self, post_id: str
    ) -> tuple[datetime | None, str | None, str | None] | None:
        row = first_row(self._fetch(
            """SELECT embedded_at, embedding_error, embedding_version
               FROM posts WHERE post_id = ?""",
            (post_id,),
        ))
        if row is None:
            return None
        embedded_at = (
            datetime.fromisoformat(row["embedded_at"]) if row["embedded_at"] else None
        )
        return embedded_at, row["embedding_error"], row["embedding_version"]

    async def recent_posts(self, person_id: int, limit: int) -> list[StoredPost]:
        rows = self._fetch(
            """SELECT p.post_id, p.text, p.posted_at, p.like_count, p.reply_count,
                      p.repost_count, p.quote_count, u.x_username, u.name
               FROM posts p
               LEFT JOIN people u ON u.id = p.person_id
               WHERE p.person_id = ?
               ORDER BY p.posted_at DESC
               LIMIT ?""",
            (person_id, limit),
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
        now = _now()
        self._conn.execute(
            _PROGRESS_UPSERT,
            (
                person_id,
                shard_key,
                status,
                max(upd.total_fetched_delta, 0),
                upd.newest_id,
                upd.oldest_id,
                now if upd.run_started else None,
                now if status in TERMINAL_STATUSES else None,
                upd.error,
                int(upd.had_full_sync),
                now,
            ),
        )
        self._conn.commit()

    async def get_progress(self, person_id: int) -> FetchProgress | None:
        row = first_row(self._fetch(
            """SELECT person_id, shard_key, status, total_fetched, newest_post_id,
                      oldest_post_id, last_run_started_at, last_run_finished_at,
                      last_error, initial_sync_complete
               FROM post_fetch_progress WHERE person_id = ?""",
            (person_id,),
        ))
        return FetchProgress.model_validate(row) if row else None

    # --- Lifecycle ---

    async def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
