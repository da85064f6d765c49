# src/posts/embed_worker.py — v1
"""Post embedding worker: drain posts without an embedding into the index.

Batches of pending posts (newest first) are embedded in one service call
and upserted into the posts namespace. A successful batch is marked with
the embedding model as its version. A failed embed or upsert marks every
post in the batch with the error text and stops the loop, so a systemic
outage surfaces to the operator instead of being skipped past. Posts
carrying an error stay pending and are retried on the next run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from peoplefinder.db.base_store import BaseRelationalStore
from peoplefinder.rag.embeddings.base_embedder import BaseEmbedder
from peoplefinder.rag.embeddings.text_builder import build_post_text
from peoplefinder.rag.vector_store.base_vector_store import BaseVectorStore
from peoplefinder.rag.vector_store.records import post_record

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 32


@dataclass
class EmbedSummary:
    batches: int = 0
    embedded: int = 0
    failed: int = 0
    stopped_on_error: bool = False
    last_error: str | None = None


async def run_post_embed_worker(
    store: BaseRelationalStore,
    embedder: BaseEmbedder,
    vector_store: BaseVectorStore,
    *,
    namespace: str = "messages",
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_batches: int | None = None,
) -> EmbedSummary:
    """Embed pending posts until none remain, a batch fails or the cap is hit."""
    if batch_size <= 0:
        raise ValueError("batch_size must be greater than 0")
    summary = EmbedSummary()
    version = embedder.model_name

    while max_batches is None or summary.batches < max_batches:
        posts = await store.fetch_pending_posts(batch_size)
        if not posts:
            logger.info("No pending posts left to embed")
            break
        summary.batches += 1
        ids = [p.post_id for p in posts]
        logger.info("Batch %d: embedding %d posts", summary.batches, len(posts))

        try:
            vectors = await embedder.embed_texts([build_post_text(p) for p in posts])
            records = [post_record(p, v) for p, v in zip(posts, vectors)]
            await vector_store.upsert(namespace, records)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error("Batch %d failed, marking %d posts: %s", summary.batches, len(ids), message)
            await store.mark_posts_embedded(ids, version, error=message)
            summary.failed += len(ids)
            summary.stopped_on_error = True
            summary.last_error = message
            break

        await store.mark_posts_embedded(ids, version)
        summary.embedded += len(ids)

    logger.info(
        "Post embedding done: %d batches, %d embedded, %d failed%s",
        summary.batches, summary.embedded, summary.failed,
        " (stopped on error)" if summary.stopped_on_error else "",
    )
    return summary
