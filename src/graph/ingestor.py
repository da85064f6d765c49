# src/graph/ingestor.py — v1
"""Graph ingestor: resolve artifact candidates into people, vectors and edges.

Candidates are processed strictly one at a time under a single profile
lookup budget. For each handle:

    1. already known locally -> flush its edge intents, no API call;
    2. otherwise look it up; not found -> skipped;
    3. resolved under a different, already known handle (renamed account)
       -> flush the edge intents of both handles against the known person;
    4. otherwise find-or-create the person, overwrite its profile fields,
       embed the profile and upsert the vector (both non-fatal);
    5. remember the id under both handles and flush the edge intents.

A second pass flushes intents for handles that became resolvable later in
the same run. Per-candidate failures are counted, never fatal.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from dataclasses import dataclass, field

from peoplefinder.core.models import VectorRecord, XProfile
from peoplefinder.db.base_store import BaseRelationalStore
from peoplefinder.graph.artifact import BatchArtifact, EdgeIntent
from peoplefinder.graph.selection import SelectionOptions, select_candidates
from peoplefinder.rag.embeddings.base_embedder import BaseEmbedder
from peoplefinder.rag.embeddings.text_builder import profile_text
from peoplefinder.rag.vector_store.base_vector_store import BaseVectorStore
from peoplefinder.rag.vector_store.records import profile_metadata
from peoplefinder.source.rate_limiter import RateLimiter
from peoplefinder.source.x_client import XApiClient, normalize_handle

logger = logging.getLogger(__name__)


@dataclass
class IngestRunContext:
    """Per-run memo of handle -> person id plus pending edge intents.

    Keys are lowercased handles without '@'.
    """

    handles: dict[str, int] = field(default_factory=dict)
    edge_map: dict[str, set[int]] = field(default_factory=dict)
    flushed: set[str] = field(default_factory=set)

    @classmethod
    def build(
        cls, known_handles: dict[str, int], edges: Iterable[EdgeIntent]
    ) -> IngestRunContext:
        ctx = cls(handles={_key(h): pid for h, pid in known_handles.items()})
        for edge in edges:
            ctx.edge_map.setdefault(_key(edge.following_username), set()).add(
                edge.follower_db_id
            )
        return ctx

    def resolve(self, handle: str) -> int | None:
        return self.handles.get(_key(handle))

    def remember(self, handle: str, person_id: int) -> None:
        self.handles[_key(handle)] = person_id

    def followers_of(self, *handles: str) -> set[int]:
        followers: set[int] = set()
        for handle in handles:
            followers |= self.edge_map.get(_key(handle), set())
        return followers


def _key(handle: str) -> str:
    return normalize_handle(handle).lower()


@dataclass
class IngestSummary:
    selected: int = 0
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    reused: int = 0
    skipped: int = 0
    errors: int = 0
    embedded: int = 0
    edges_inserted: int = 0

    def log(self) -> None:
        logger.info(
            "Ingest summary: selected=%d processed=%d inserted=%d updated=%d "
            "reused=%d skipped=%d errors=%d embedded=%d edges=%d",
            self.selected, self.processed, self.inserted, self.updated,
            self.reused, self.skipped, self.errors, self.embedded,
            self.edges_inserted,
        )


class GraphIngestor:
    """Consumes a batch artifact into the relational store and vector index."""

    def __init__(
        self,
        store: BaseRelationalStore,
        client: XApiClient,
        limiter: RateLimiter,
        embedder: BaseEmbedder,
        vector_store: BaseVectorStore,
        *,
        profiles_namespace: str = "users",
    ) -> None:
        self._store = store
        self._client = client
        self._limiter = limiter
        self._embedder = embedder
        self._vectors = vector_store
        self._namespace = profiles_namespace

    async def run(
        self,
        artifact: BatchArtifact,
        options: SelectionOptions | None = None,
        *,
        rng: random.Random | None = None,
        context: IngestRunContext | None = None,
    ) -> IngestSummary:
        opts = options or SelectionOptions()
        candidates = [u.strip() for u in artifact.usernames if u and u.strip()]
        selected = select_candidates(candidates, opts, rng)
        ctx = context or IngestRunContext.build(
            await self._store.known_handles(), artifact.edges
        )
        summary = IngestSummary(selected=len(selected))

        logger.info(
            "Processing %d of %d usernames (%s)",
            len(selected), len(candidates), opts.describe(len(candidates)),
        )
        for position, username in enumerate(selected, start=1):
            try:
                await self.ingest_handle(ctx, username, summary, position, len(selected))
            except Exception as e:
                logger.error("Error processing @%s: %s", username, e)
                summary.errors += 1

        await self.flush_remaining(ctx, summary)
        summary.log()
        return summary

    async def ingest_handle(
        self,
        ctx: IngestRunContext,
        username: str,
        summary: IngestSummary,
        position: int = 1,
        total: int = 1,
    ) -> None:
        known_id = ctx.resolve(username)
        if known_id is not None:
            await self._flush(ctx, known_id, summary, username)
            summary.reused += 1
            return

        logger.info("[%d/%d] @%s", position, total, username)
        await self._limiter.acquire()
        profile = await self._client.get_profile_by_handle(username)
        if profile is None:
            logger.info("  Skipping @%s: not found", username)
            summary.skipped += 1
            return

        canonical_id = ctx.resolve(profile.username)
        if canonical_id is not None:
            logger.info(
                "  @%s resolves to known @%s (person %d)",
                username, profile.username, canonical_id,
            )
            ctx.remember(username, canonical_id)
            await self._flush(ctx, canonical_id, summary, profile.username, username)
            summary.reused += 1
            return

        person_id, created = await self._store.upsert_profile(profile)
        if created:
            summary.inserted += 1
        else:
            summary.updated += 1

        await self._index_profile(profile, summary)

        ctx.remember(profile.username, person_id)
        ctx.remember(username, person_id)
        await self._flush(ctx, person_id, summary, username, profile.username)
        summary.processed += 1

    async def flush_remaining(self, ctx: IngestRunContext, summary: IngestSummary) -> None:
        """Flush intents for handles the run never flushed but can now resolve."""
        for handle in list(ctx.edge_map):
            if handle in ctx.flushed:
                continue
            person_id = ctx.resolve(handle)
            if person_id is None:
                continue
            await self._flush(ctx, person_id, summary, handle)

    async def _index_profile(self, profile: XProfile, summary: IngestSummary) -> None:
        text = profile_text(profile)
        try:
            vector = await self._embedder.embed_query(text)
        except Exception as e:
            logger.error("  Failed to create embedding for @%s: %s", profile.username, e)
            return
        summary.embedded += 1

        try:
            await self._vectors.upsert(
                self._namespace,
                [VectorRecord(id=profile.id, values=vector, metadata=profile_metadata(profile))],
            )
        except Exception as e:
            logger.error("  Vector upsert failed for @%s: %s", profile.username, e)

    async def _flush(
        self,
        ctx: IngestRunContext,
        person_id: int,
        summary: IngestSummary,
        *handles: str,
    ) -> None:
        followers = ctx.followers_of(*handles)
        try:
            if followers:
                summary.edges_inserted += await self._store.upsert_edges(
                    sorted(followers), person_id
                )
        except Exception as e:
            logger.error("  Failed to upsert edges for @%s: %s", handles[0], e)
            return
        ctx.flushed.update(_key(h) for h in handles)
