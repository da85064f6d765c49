# src/db/base_store.py — v1
"""Abstract relational store interface.

The relational store is the system of record for people, following edges,
posts and post-fetch progress. Every write is an upsert keyed by a natural
or external identifier, so retried and resumed runs never duplicate rows.

Write rules shared by all backends:
    - people: one row per external id; re-fetched profiles overwrite fields.
    - following: unique per (follower_id, following_id); duplicates are no-ops.
    - posts: keyed by post id; a changed text clears the embedding status,
      an unchanged text (even with new engagement counts) keeps it.
    - post_fetch_progress: total_fetched accumulates, cursors and run
      timestamps keep their previous value unless a new one is supplied,
      initial_sync_complete can only go from false to true.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Sequence
from datetime import datetime
from typing import TypeVar

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

T = TypeVar("T")

EDGE_CHUNK_SIZE = 100
TERMINAL_STATUSES: frozenset[str] = frozenset({"idle", "error"})


PROFILE_COLUMNS = (
    "name",
    "x_user_id",
    "x_username",
    "x_description",
    "x_location",
    "x_url",
    "x_verified",
    "x_verified_type",
    "x_followers_count",
    "x_following_count",
    "x_listed_count",
    "x_post_count",
    "x_created_at",
    "profile_image_url",
)

POST_COLUMNS = (
    "post_id",
    "person_id",
    "x_user_id",
    "text",
    "lang",
    "like_count",
    "reply_count",
    "repost_count",
    "quote_count",
    "posted_at",
    "fetched_at",
    "conversation_id",
    "in_reply_to_user_id",
    "referenced_post_id",
    "raw_payload",
)


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size <= 0:
        raise ValueError("size must be greater than 0")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def profile_values(profile: XProfile) -> dict[str, object]:
    """Column values written for a resolved profile, keyed by PROFILE_COLUMNS."""
    metrics = profile.metrics
    return {
        "name": profile.name or profile.username,
        "x_user_id": profile.id,
        "x_username": profile.username,
        "x_description": profile.description,
        "x_location": profile.location,
        "x_url": profile.url,
        "x_verified": profile.verified,
        "x_verified_type": profile.verified_type,
        "x_followers_count": metrics.followers_count,
        "x_following_count": metrics.following_count,
        "x_listed_count": metrics.listed_count,
        "x_post_count": metrics.tweet_count,
        "x_created_at": profile.created_at,
        "profile_image_url": profile.profile_image_url,
    }


def post_values(
    target: ShardTarget, post: XPost, fetched_at: datetime
) -> dict[str, object]:
    """Column values written for one post, keyed by POST_COLUMNS.

    A post without a creation timestamp is dated at fetch time.
    """
    metrics = post.metrics
    return {
        "post_id": post.id,
        "person_id": target.id,
        "x_user_id": target.x_user_id,
        "text": post.text,
        "lang": post.lang,
        "like_count": metrics.like_count,
        "reply_count": metrics.reply_count,
        "repost_count": metrics.retweet_count,
        "quote_count": metrics.quote_count,
        "posted_at": post.created_at or fetched_at,
        "fetched_at": fetched_at,
        "conversation_id": post.conversation_id,
        "in_reply_to_user_id": post.in_reply_to_user_id,
        "referenced_post_id": post.referenced_post_id,
        "raw_payload": post.model_dump_json(exclude_none=True),
    }


class BaseRelationalStore(ABC):
    """Unified interface for relational store backends."""

    # --- People ---

    @abstractmethod
    async def add_person(
        self,
        name: str | None = None,
        handle: str | None = None,
        *,
        is_seed: bool = False,
        x_user_id: str | None = None,
        x_username: str | None = None,
    ) -> int:
        """Insert a locally-seeded person and return its id."""

    @abstractmethod
    async def get_person(self, person_id: int) -> PersonRow | None:
        """Fetch one person by local id."""

    @abstractmethod
    async def list_seed_people(self) -> list[PersonRow]:
        """Seed people with a resolved external id, in id order."""

    @abstractmethod
    async def known_handles(self) -> dict[str, int]:
        """Lowercased handle -> local id for every person with a handle."""

    @abstractmethod
    async def find_person_id(self, x_user_id: str, username: str) -> int | None:
        """Local id matching an external id, else a case-insensitive handle."""

    @abstractmethod
    async def upsert_profile(
        self, profile: XProfile, person_id: int | None = None
    ) -> tuple[int, bool]:
        """Find-or-create the person for a profile and overwrite its fields.

        Resolution order: external id, then ``person_id``, then a
        case-insensitive handle match. Returns ``(id, created)``.
        """

    @abstractmethod
    async def list_people_with_external_id(self) -> list[PersonRow]:
        """Every person with a resolved external id, in id order."""

    @abstractmethod
    async def list_people_needing_refresh(
        self, refreshed_before: datetime, limit: int | None = None
    ) -> list[PersonRow]:
        """People with a handle that are unresolved or stale, in id order."""

    @abstractmethod
    async def fetch_people_by_external_ids(
        self, x_user_ids: Iterable[str]
    ) -> dict[str, PersonRow]:
        """External id -> person for the ids that exist locally."""

    @abstractmethod
    async def resolve_person(self, identifier: str) -> PersonRow | None:
        """Find a person by external id or case-insensitive handle."""

    # --- Edges ---

    @abstractmethod
    async def upsert_edges(
        self, follower_ids: Iterable[int], following_id: int
    ) -> int:
        """Insert follower -> following edges in chunks; return rows inserted."""

    @abstractmethod
    async def list_edges(self) -> list[tuple[int, int]]:
        """All (follower_id, following_id) pairs, ordered."""

    # --- Posts ---

    @abstractmethod
    async def list_shard_targets(
        self, shard_index: int, shard_total: int, limit: int | None = None
    ) -> list[ShardTarget]:
        """People with an external id where ``id % total == index``, by id."""

    @abstractmethod
    async def upsert_posts(self, target: ShardTarget, posts: Sequence[XPost]) -> int:
        """Upsert a page of posts for one person; return rows written."""

    @abstractmethod
    async def fetch_pending_posts(self, limit: int) -> list[PendingPost]:
        """Posts with no embedding yet, newest first."""

    @abstractmethod
    async def mark_posts_embedded(
        self, post_ids: Sequence[str], version: str, error: str | None = None
    ) -> None:
        """Mark posts embedded with ``version``, or record ``error`` instead."""

    @abstractmethod
    async def get_post_embedding(
        self, post_id: str
    ) -> tuple[datetime | None, str | None, str | None] | None:
        """``(embedded_at, embedding_error, embedding_version)`` for a post."""

    @abstractmethod
    async def recent_posts(self, person_id: int, limit: int) -> list[StoredPost]:
        """Newest posts of one person."""

    # --- Progress ---

    @abstractmethod
    async def mark_progress(
        self,
        person_id: int,
        shard_key: str,
        status: FetchStatus,
        update: ProgressUpdate | None = None,
    ) -> None:
        """Upsert the fetch-progress record of one person."""

    @abstractmethod
    async def get_progress(self, person_id: int) -> FetchProgress | None:
        """Current fetch-progress record of one person."""

    # --- Lifecycle ---

    async def ensure_schema(self) -> None:
        """Create the relational schema if missing. Default: already created on open."""

    async def close(self) -> None:
        """Release connections. Default: nothing to release."""
