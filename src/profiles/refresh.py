# src/profiles/refresh.py — v1
"""Profile refresh for locally-seeded and stale people.

Selects people that carry a handle and either were never resolved
upstream or were last refreshed before the max age. Each one is looked up
by handle under the profile budget, its fields overwritten in place and
its profile vector re-upserted. The database write happens even when the
embedding step fails; a failed vector is only logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from peoplefinder.core.models import PersonRow, VectorRecord
from peoplefinder.db.base_store import BaseRelationalStore
from peoplefinder.rag.embeddings.base_embedder import BaseEmbedder
from peoplefinder.rag.embeddings.text_builder import person_text
from peoplefinder.rag.vector_store.base_vector_store import BaseVectorStore
from peoplefinder.rag.vector_store.records import person_metadata
from peoplefinder.source.rate_limiter import RateLimiter
from peoplefinder.source.x_client import XApiClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_DAYS = 7


@dataclass
class RefreshSummary:
    selected: int = 0
    refreshed: int = 0
    skipped: int = 0
    errors: int = 0
    embedded: int = 0


class ProfileRefresher:
    """Re-resolves people whose profile data is missing or stale."""

    def __init__(
        self,
        store: BaseRelationalStore,
        client: XApiClient,
        limiter: RateLimiter,
        embedder: BaseEmbedder,
        vector_store: BaseVectorStore,
        *,
        namespace: str = "users",
        max_age_days: int = DEFAULT_MAX_AGE_DAYS,
    ) -> None:
        self._store = store
        self._client = client
        self._limiter = limiter
        self._embedder = embedder
        self._vectors = vector_store
        self._namespace = namespace
        self._max_age = timedelta(days=max_age_days)

    async def run(
        self, *, now: datetime | None = None, limit: int | None = None
    ) -> RefreshSummary:
        cutoff = (now or datetime.now(timezone.utc)) - self._max_age
        people = await self._store.list_people_needing_refresh(cutoff, limit)
        summary = RefreshSummary(selected=len(people))
        if not people:
            logger.info("No people need a profile refresh")
            return summary

        logger.info("Refreshing %d profiles (stale before %s)", len(people), cutoff.isoformat())
        for position, person in enumerate(people, start=1):
            try:
                await self.refresh_person(person, summary, position, len(people))
            except Exception as e:
                logger.error("  Error refreshing %s: %s", person.label, e)
                summary.errors += 1

        logger.info(
            "Refresh done: %d selected, %d refreshed, %d skipped, %d errors, %d embedded",
            summary.selected, summary.refreshed, summary.skipped,
            summary.errors, summary.embedded,
        )
        return summary

    async def refresh_person(
        self,
        person: PersonRow,
        summary: RefreshSummary,
        position: int = 1,
        total: int = 1,
    ) -> None:
        handle = person.lookup_handle
        if not handle:
            logger.info("  Skipping person %d: no handle", person.id)
            summary.skipped += 1
            return

        logger.info("[%d/%d] @%s", position, total, handle)
        await self._limiter.acquire()
        profile = await self._client.get_profile_by_handle(handle)
        if profile is None:
            logger.info("  Could not resolve @%s", handle)
            summary.skipped += 1
            return

        person_id, _ = await self._store.upsert_profile(profile, person_id=person.id)
        summary.refreshed += 1
        logger.info(
            "  Refreshed %s (%d followers)", profile.name or profile.username,
            profile.metrics.followers_count,
        )

        refreshed = await self._store.get_person(person_id)
        if refreshed is None or not refreshed.x_user_id:
            return
        try:
            vector = await self._embedder.embed_query(person_text(refreshed))
            await self._vectors.upsert(
                self._namespace,
                [
                    VectorRecord(
                        id=refreshed.x_user_id,
                        values=vector,
                        metadata=person_metadata(refreshed),
                    )
                ],
            )
        except Exception as e:
            logger.warning("  Failed to store profile vector for @%s: %s", handle, e)
            return
        summary.embedded += 1
