# src/core/models.py — v2
"""Shared Pydantic domain models used across modules.

No module redefines these types; all imports come from core.models.
Upstream payload models ignore unknown fields so API additions never break
parsing.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class _Upstream(BaseModel):
    """Base for payloads parsed from the social-graph API."""

    model_config = ConfigDict(extra="ignore")


# === UPSTREAM: PROFILES AND EDGES ===


class PublicMetrics(_Upstream):
    """Public-metrics snapshot attached to a profile."""

    followers_count: int = 0
    following_count: int = 0
    listed_count: int = 0
    tweet_count: int = 0


class XProfile(_Upstream):
    """Full profile resolved by handle."""

    id: str
    username: str
    name: str = ""
    description: str | None = None
    location: str | None = None
    profile_image_url: str | None = None
    url: str | None = None
    created_at: datetime | None = None
    verified: bool = False
    verified_type: str | None = None
    public_metrics: PublicMetrics | None = None

    @property
    def metrics(self) -> PublicMetrics:
        return self.public_metrics or PublicMetrics()


class EdgeTarget(_Upstream):
    """One account returned by the following-edges endpoint."""

    id: str
    username: str | None = None


class EdgePage(BaseModel):
    """One page of following edges plus the cursor for the next page."""

    targets: list[EdgeTarget] = Field(default_factory=list)
    next_cursor: str | None = None
    result_count: int = 0


# === UPSTREAM: POSTS ===


class PostMetrics(_Upstream):
    like_count: int = 0
    reply_count: int = 0
    retweet_count: int = 0
    quote_count: int = 0


class ReferencedPost(_Upstream):
    type: str
    id: str


class XPost(_Upstream):
    """One public post as returned by the posts endpoint."""

    id: str
    text: str
    lang: str | None = None
    created_at: datetime | None = None
    conversation_id: str | None = None
    in_reply_to_user_id: str | None = None
    referenced_tweets: list[ReferencedPost] = Field(default_factory=list)
    public_metrics: PostMetrics | None = None

    @property
    def metrics(self) -> PostMetrics:
        return self.public_metrics or PostMetrics()

    @property
    def referenced_post_id(self) -> str | None:
        return self.referenced_tweets[0].id if self.referenced_tweets else None


class PostPage(BaseModel):
    """One page of posts with pagination and range metadata."""

    posts: list[XPost] = Field(default_factory=list)
    next_cursor: str | None = None
    newest_id: str | None = None
    oldest_id: str | None = None
    result_count: int = 0


# === RELATIONAL VIEWS ===


class PersonRow(BaseModel):
    """A row of the people table as seen by workers."""

    id: int
    name: str | None = None
    handle: str | None = None
    is_seed: bool = False
    x_user_id: str | None = None
    x_username: str | None = None
    x_description: str | None = None
    x_location: str | None = None
    x_url: str | None = None
    x_verified: bool | None = None
    x_verified_type: str | None = None
    x_followers_count: int | None = None
    x_following_count: int | None = None
    x_listed_count: int | None = None
    x_post_count: int | None = None
    profile_image_url: str | None = None
    derived_role: str | None = None
    derived_topics: list[str] | None = None
    derived_summary: str | None = None
    last_refreshed_at: datetime | None = None

    @property
    def lookup_handle(self) -> str | None:
        """Handle to resolve upstream: the local handle, else the last known one."""
        if self.handle:
            return self.handle.lstrip("@")
        return self.x_username

    @property
    def label(self) -> str:
        """Short label for log lines."""
        if self.x_username:
            return f"@{self.x_username}"
        return self.x_user_id or f"person {self.id}"


class ShardTarget(BaseModel):
    """Entity assigned to a post-fetch shard."""

    id: int
    x_user_id: str
    x_username: str | None = None

    @property
    def label(self) -> str:
        return f"@{self.x_username}" if self.x_username else self.x_user_id


class PendingPost(BaseModel):
    """Post awaiting an embedding, joined with its author."""

    post_id: str
    text: str
    person_id: int
    x_user_id: str
    posted_at: datetime
    x_username: str | None = None
    name: str | None = None


class StoredPost(BaseModel):
    """Post as read back for display."""

    post_id: str
    text: str
    posted_at: datetime
    like_count: int | None = None
    reply_count: int | None = None
    repost_count: int | None = None
    quote_count: int | None = None
    x_username: str | None = None
    name: str | None = None


FetchStatus = Literal["pending", "running", "idle", "error"]


class FetchProgress(BaseModel):
    """Resumable checkpoint for one entity's post history."""

    person_id: int
    shard_key: str
    status: FetchStatus = "pending"
    total_fetched: int = 0
    newest_post_id: str | None = None
    oldest_post_id: str | None = None
    last_run_started_at: datetime | None = None
    last_run_finished_at: datetime | None = None
    last_error: str | None = None
    initial_sync_complete: bool = False


class ProgressUpdate(BaseModel):
    """Fields applied by one progress upsert.

    total_fetched_delta is added to the stored count; cursors and timestamps
    only overwrite when supplied; had_full_sync can only switch the
    initial-sync flag on.
    """

    total_fetched_delta: int = 0
    newest_id: str | None = None
    oldest_id: str | None = None
    had_full_sync: bool = False
    error: str | None = None
    run_started: bool = False


# === VECTOR INDEX ===


class VectorRecord(BaseModel):
    """A vector plus metadata keyed by id within a namespace."""

    id: str
    values: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    """One ranked match returned by a vector query."""

    id: str
    score: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)
