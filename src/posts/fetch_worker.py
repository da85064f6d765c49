# src/posts/fetch_worker.py — v1
"""Post fetch worker: page through the posts of one shard of people.

A shard is every person with ``id % shard_total == shard_index``, taken in
ascending id order up to ``max_users_per_run``. Per person:

    pending -> running -> idle | error

Pages are fetched under the worker's own budget. A page cap or post cap
ends the person's run early (history not complete); an empty next cursor
means the full history was seen and initial_sync_complete flips on. A
fetch failure records the error with whatever was fetched so far and the
worker moves on to the next person.

The same coroutine serves the standalone CLI and the multi-worker
orchestrator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from peoplefinder.config.settings import Settings
from peoplefinder.config.workers import PostWorkerDefinition
from peoplefinder.core.models import ProgressUpdate, ShardTarget
from peoplefinder.core.sharding import shard_key as make_shard_key
from peoplefinder.core.sharding import validate_shard
from peoplefinder.db.base_store import BaseRelationalStore
from peoplefinder.logging.context import worker_context
from peoplefinder.source.rate_limiter import RateLimiter
from peoplefinder.source.x_client import MAX_POST_RESULTS, XApiClient

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 15 * 60.0
MIN_REQUEST_INTERVAL_S = 1.0
DEFAULT_REQUESTS_PER_WINDOW = 10_000
DEFAULT_MAX_POSTS_PER_USER = 25
DEFAULT_MAX_USERS_PER_RUN = 200


@dataclass(frozen=True)
class PostFetchWorkerConfig:
    """Everything one post fetch worker needs besides its collaborators."""

    worker_index: int = 0
    worker_total: int = 1
    name: str = "default"
    api_key_alias: str | None = None
    shard_key: str | None = None
    requests_per_15m: int = DEFAULT_REQUESTS_PER_WINDOW
    max_pages_per_user: int | None = None
    max_users_per_run: int | None = DEFAULT_MAX_USERS_PER_RUN
    max_posts_per_user: int | None = DEFAULT_MAX_POSTS_PER_USER

    def __post_init__(self) -> None:
        validate_shard(self.worker_index, self.worker_total)
        if self.requests_per_15m <= 0:
            raise ValueError("requests_per_15m must be greater than 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> PostFetchWorkerConfig:
        """Single standalone worker driven by the POST_WORKER_* settings."""
        return cls(
            worker_index=settings.post_worker_index,
            worker_total=settings.post_worker_total,
            name=settings.post_worker_name,
            shard_key=settings.post_shard_key or None,
            requests_per_15m=settings.x_tweets_reqs_per_15m,
            max_pages_per_user=settings.post_max_pages,
            max_users_per_run=settings.post_max_users,
            max_posts_per_user=settings.post_max_posts,
        )

    @classmethod
    def from_definition(
        cls, definition: PostWorkerDefinition, settings: Settings
    ) -> PostFetchWorkerConfig:
        """Orchestrated worker; unset caps fall back to the settings defaults."""
        return cls(
            worker_index=definition.worker_index,
            worker_total=definition.worker_total,
            name=definition.name,
            api_key_alias=definition.name,
            shard_key=definition.name,
            requests_per_15m=definition.requests_per_15m or settings.x_tweets_reqs_per_15m,
            max_pages_per_user=(
                definition.max_pages_per_user
                if definition.max_pages_per_user is not None
                else settings.post_max_pages
            ),
            max_users_per_run=definition.max_users_per_run or settings.post_max_users,
            max_posts_per_user=definition.max_posts_per_user or settings.post_max_posts,
        )

    @property
    def resolved_shard_key(self) -> str:
        return self.shard_key or make_shard_key(
            self.worker_index, self.worker_total, self.api_key_alias
        )

    @property
    def request_interval_s(self) -> float:
        """Spacing derived from the budget, never below one second."""
        return max(MIN_REQUEST_INTERVAL_S, WINDOW_SECONDS / self.requests_per_15m)


@dataclass
class FetchSummary:
    shard_key: str
    targets: int = 0
    completed: int = 0
    failed: int = 0
    posts_stored: int = 0
    api_requests: int = 0


async def run_post_fetch_worker(
    config: PostFetchWorkerConfig,
    store: BaseRelationalStore,
    client: XApiClient,
    limiter: RateLimiter | None = None,
) -> FetchSummary:
    """Fetch posts for every person in the configured shard."""
    key = config.resolved_shard_key
    with worker_context(config.name, shard=key):
        limiter = limiter or RateLimiter.from_interval(
            config.request_interval_s, name=key
        )
        summary = FetchSummary(shard_key=key)
        targets = await store.list_shard_targets(
            config.worker_index, config.worker_total, config.max_users_per_run
        )
        summary.targets = len(targets)

        if not targets:
            logger.info(
                "No people assigned to this shard (index %d/%d)",
                config.worker_index, config.worker_total,
            )
            return summary

        logger.info(
            "Processing %d people (budget %d req/15m, interval %.2fs)",
            len(targets), config.requests_per_15m, limiter.interval,
        )
        for target in targets:
            await _fetch_target(config, key, target, store, client, limiter, summary)

        logger.info(
            "Completed run across %d people: %d ok, %d failed, %d posts, %d API calls",
            summary.targets, summary.completed, summary.failed,
            summary.posts_stored, summary.api_requests,
        )
        return summary


async def _fetch_target(
    config: PostFetchWorkerConfig,
    key: str,
    target: ShardTarget,
    store: BaseRelationalStore,
    client: XApiClient,
    limiter: RateLimiter,
    summary: FetchSummary,
) -> None:
    logger.info("Fetching posts for %s (person %d)", target.label, target.id)
    await store.mark_progress(target.id, key, "running", ProgressUpdate(run_started=True))

    cursor: str | None = None
    page = 0
    fetched = 0
    newest_id: str | None = None
    oldest_id: str | None = None
    full_history = False

    try:
        while True:
            if config.max_pages_per_user and page >= config.max_pages_per_user:
                logger.info("  Reached max pages (%d) for %s", config.max_pages_per_user, target.label)
                break
            if config.max_posts_per_user and fetched >= config.max_posts_per_user:
                logger.info("  Reached max posts (%d) for %s", config.max_posts_per_user, target.label)
                break

            await limiter.acquire()
            summary.api_requests += 1
            page += 1

            page_size = MAX_POST_RESULTS
            if config.max_posts_per_user:
                page_size = min(page_size, config.max_posts_per_user - fetched)
            result = await client.get_posts_page(target.x_user_id, cursor, page_size)
            cursor = result.next_cursor
            posts = result.posts
            truncated = False
            if config.max_posts_per_user:
                # The API minimum page size can exceed what the cap leaves.
                remaining = config.max_posts_per_user - fetched
                truncated = len(posts) > remaining
                posts = posts[:remaining]

            if not posts:
                logger.info("  Page %d: no posts returned", page)
            else:
                logger.info(
                    "  Page %d: fetched %d posts (next cursor: %s)",
                    page, len(posts), "yes" if cursor else "no",
                )
                fetched += await store.upsert_posts(target, posts)
                if truncated:
                    newest_id = newest_id or posts[0].id
                    oldest_id = posts[-1].id
                else:
                    newest_id = newest_id or result.newest_id or posts[0].id
                    oldest_id = result.oldest_id or posts[-1].id or oldest_id

            if truncated:
                break

            if not cursor:
                full_history = True
                break
    except Exception as e:
        logger.error("  Failed while fetching posts for %s: %s", target.label, e)
        summary.failed += 1
        summary.posts_stored += fetched
        await store.mark_progress(
            target.id,
            key,
            "error",
            ProgressUpdate(
                total_fetched_delta=fetched,
                newest_id=newest_id,
                oldest_id=oldest_id,
                error=str(e) or type(e).__name__,
                had_full_sync=full_history,
            ),
        )
        return

    await store.mark_progress(
        target.id,
        key,
        "idle",
        ProgressUpdate(
            total_fetched_delta=fetched,
            newest_id=newest_id,
            oldest_id=oldest_id,
            had_full_sync=full_history,
        ),
    )
    summary.completed += 1
    summary.posts_stored += fetched
    logger.info("  Stored %d posts for %s (%d pages)", fetched, target.label, page)
