# src/profiles/backfill.py — v1
"""Profile vector backfill.

Walks every person with an external id in id order and makes sure the
profiles namespace holds a vector for them. People that already have a
non-empty vector are left alone, so the job is safe to rerun at any time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from peoplefinder.core.models import PersonRow, VectorRecord
from peoplefinder.db.base_store import BaseRelationalStore
from peoplefinder.rag.embeddings.base_embedder import BaseEmbedder
from peoplefinder.rag.embeddings.text_builder import person_text
from peoplefinder.rag.vector_store.base_vector_store import BaseVectorStore
from peoplefinder.rag.vector_store.records import person_metadata

logger = logging.getLogger(__name__)


@dataclass
class BackfillSummary:
    checked: int = 0
    already_indexed: int = 0
    embedded: int = 0
    empty: int = 0
    errors: int = 0


async def backfill_profile_vectors(
    store: BaseRelationalStore,
    embedder: BaseEmbedder,
    vector_store: BaseVectorStore,
    *,
    namespace: str = "users",
) -> BackfillSummary:
    people = await store.list_people_with_external_id()
    summary = BackfillSummary()
    logger.info("Checking profile vectors for %d people", len(people))

    for person in people:
        summary.checked += 1
        try:
            await _backfill_one(person, embedder, vector_store, namespace, summary)
        except Exception as e:
            logger.error("  Failed to backfill %s: %s", person.label, e)
            summary.errors += 1

    logger.info(
        "Backfill done: %d checked, %d already indexed, %d embedded, %d empty, %d errors",
        summary.checked, summary.already_indexed, summary.embedded,
        summary.empty, summary.errors,
    )
    return summary


async def _backfill_one(
    person: PersonRow,
    embedder: BaseEmbedder,
    vector_store: BaseVectorStore,
    namespace: str,
    summary: BackfillSummary,
) -> None:
    if not person.x_user_id:
        return
    if await vector_store.exists(namespace, person.x_user_id):
        summary.already_indexed += 1
        return

    text = person_text(person)
    if not text.strip():
        logger.warning("  Skipping %s: nothing to embed", person.label)
        summary.empty += 1
        return

    vector = await embedder.embed_query(text)
    await vector_store.upsert(
        namespace,
        [VectorRecord(id=person.x_user_id, values=vector, metadata=person_metadata(person))],
    )
    summary.embedded += 1
    logger.info("  Embedded %s", person.label)
