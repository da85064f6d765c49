# src/graph/collector.py — v1
"""Graph collector: walk the first-degree following edges of seed people.

For every seed (flagged seed, external id resolved) all following pages
are fetched under the following-edges budget. Every returned account
yields an edge intent (deduplicated per seed and lowercased handle); the
ones whose handle is not yet known locally become candidates. A failing
page stops that seed only, keeping what was already collected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from peoplefinder.core.models import PersonRow
from peoplefinder.db.base_store import BaseRelationalStore
from peoplefinder.graph.artifact import BatchArtifact, EdgeIntent
from peoplefinder.source.rate_limiter import RateLimiter
from peoplefinder.source.x_client import XApiClient

logger = logging.getLogger(__name__)


def sort_handles(handles: list[str]) -> list[str]:
    """Case-insensitive sort, ties broken by the raw value for stable output."""
    return sorted(handles, key=lambda h: (h.casefold(), h))


@dataclass
class CollectorState:
    """Accumulators for one collector run."""

    known: set[str]
    candidates: dict[str, str] = field(default_factory=dict)
    edges: list[EdgeIntent] = field(default_factory=list)
    edge_keys: set[tuple[int, str]] = field(default_factory=set)
    seeds_processed: int = 0
    seeds_failed: int = 0
    api_requests: int = 0
    followings_fetched: int = 0

    def add(self, seed: PersonRow, username: str) -> None:
        normalized = username.lower()
        key = (seed.id, normalized)
        if key not in self.edge_keys:
            self.edge_keys.add(key)
            self.edges.append(
                EdgeIntent(
                    follower_db_id=seed.id,
                    follower_x_user_id=seed.x_user_id or "",
                    following_username=username,
                )
            )
        if normalized not in self.known:
            self.candidates.setdefault(normalized, username)

    def to_artifact(self) -> BatchArtifact:
        usernames = sort_handles(list(self.candidates.values()))
        return BatchArtifact(
            seeds_processed=self.seeds_processed,
            total_api_requests=self.api_requests,
            total_followings_fetched=self.followings_fetched,
            unique_new_usernames=len(usernames),
            edge_count=len(self.edges),
            usernames=usernames,
            edges=self.edges,
        )


class GraphCollector:
    """Builds a batch artifact from the seeds' following lists."""

    def __init__(
        self,
        store: BaseRelationalStore,
        client: XApiClient,
        limiter: RateLimiter,
        *,
        max_pages_per_seed: int | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._limiter = limiter
        self._max_pages = max_pages_per_seed

    async def run(self) -> BatchArtifact:
        seeds = await self._store.list_seed_people()
        state = CollectorState(known=set(await self._store.known_handles()))

        if not seeds:
            logger.info("No seed people with external ids found, nothing to collect")
            return state.to_artifact()

        logger.info(
            "Collecting followings for %d seeds (%.1fs between requests)",
            len(seeds), self._limiter.interval,
        )
        for seed in seeds:
            await self._collect_seed(seed, state)

        artifact = state.to_artifact()
        logger.info(
            "Collector done: %d seeds (%d failed), %d requests, %d followings, "
            "%d new usernames, %d edges",
            state.seeds_processed, state.seeds_failed, state.api_requests,
            state.followings_fetched, artifact.unique_new_usernames, artifact.edge_count,
        )
        return artifact

    async def _collect_seed(self, seed: PersonRow, state: CollectorState) -> None:
        if not seed.x_user_id:
            logger.warning("Skipping seed %d: missing external id", seed.id)
            return

        logger.info("Fetching followings for %s (%s)", seed.name or seed.label, seed.x_user_id)
        state.seeds_processed += 1
        cursor: str | None = None
        page = 0

        while True:
            if self._max_pages is not None and page >= self._max_pages:
                logger.info("  Page cap %d reached for %s", self._max_pages, seed.label)
                break
            await self._limiter.acquire()
            state.api_requests += 1
            page += 1
            try:
                result = await self._client.get_following_page(seed.x_user_id, cursor)
            except Exception as e:
                logger.error("  Failed on page %d for %s: %s", page, seed.label, e)
                state.seeds_failed += 1
                break

            logger.info("  Page %d: received %d followings", page, len(result.targets))
            for target in result.targets:
                state.followings_fetched += 1
                if target.username:
                    state.add(seed, target.username)

            cursor = result.next_cursor
            if not cursor:
                break
