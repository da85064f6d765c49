# src/search/people_search.py — v1
"""People search: natural-language query in, ranked people out.

The query is embedded, matched against the profiles namespace and joined
back to the relational store by external id. Store fields win over vector
metadata; metadata only fills gaps for people missing locally.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from peoplefinder.core.models import PersonRow, SearchResult
from peoplefinder.db.base_store import BaseRelationalStore
from peoplefinder.rag.embeddings.base_embedder import BaseEmbedder
from peoplefinder.rag.vector_store.base_vector_store import BaseVectorStore

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 3
DEFAULT_TOP_K = 6
MAX_TOP_K = 10
REASON_TOPIC_LIMIT = 5
METADATA_TOPIC_LIMIT = 6
REASON_SEPARATOR = " • "
GENERIC_REASON = "Relevant public activity and interests match the query intent."


class PersonMatch(BaseModel):
    """One ranked search result."""

    external_id: str
    handle: str | None = None
    name: str | None = None
    location: str | None = None
    role: str | None = None
    topics: list[str] | None = None
    followers: int | None = None
    similarity: float = 0.0
    summary: str
    image: str | None = None
    url: str | None = None


def _meta_str(metadata: dict[str, Any], key: str) -> str | None:
    value = metadata.get(key)
    return value if isinstance(value, str) else None


def build_reason(match: SearchResult, person: PersonRow | None = None) -> str:
    """Short explanation of why a person matched."""
    parts: list[str] = []
    if person is not None:
        if person.derived_role:
            parts.append(f"Role: {person.derived_role}")
        if person.derived_topics:
            parts.append(f"Topics: {', '.join(person.derived_topics[:REASON_TOPIC_LIMIT])}")
        if person.derived_summary:
            parts.append(person.derived_summary)

    description = _meta_str(match.metadata, "description")
    if description and len(parts) < 2:
        parts.append(description)

    if not parts:
        parts.append(GENERIC_REASON)
    return REASON_SEPARATOR.join(parts)


def to_person_match(match: SearchResult, person: PersonRow | None) -> PersonMatch:
    metadata = match.metadata
    handle = (person.x_username if person else None) or _meta_str(metadata, "username")

    topics: list[str] | None = None
    if person is not None and person.derived_topics is not None:
        topics = [str(t) for t in person.derived_topics]
    elif isinstance(metadata.get("topics"), list):
        topics = [str(t) for t in metadata["topics"]][:METADATA_TOPIC_LIMIT]

    followers = person.x_followers_count if person else None
    if followers is None and isinstance(metadata.get("followers"), (int, float)):
        followers = int(metadata["followers"])

    url = (person.x_url if person else None) or (
        f"https://x.com/{handle}" if handle else _meta_str(metadata, "url")
    )

    return PersonMatch(
        external_id=match.id,
        handle=handle,
        name=(person.name if person else None) or _meta_str(metadata, "name"),
        location=(person.x_location if person else None) or _meta_str(metadata, "location"),
        role=person.derived_role if person else None,
        topics=topics,
        followers=followers,
        similarity=match.score,
        summary=build_reason(match, person),
        image=(person.profile_image_url if person else None)
        or _meta_str(metadata, "profile_image_url"),
        url=url,
    )


class PeopleSearch:
    """Vector search over profile embeddings joined with the people table."""

    def __init__(
        self,
        store: BaseRelationalStore,
        embedder: BaseEmbedder,
        vector_store: BaseVectorStore,
        *,
        namespace: str = "users",
        default_top_k: int = DEFAULT_TOP_K,
        max_top_k: int = MAX_TOP_K,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._vectors = vector_store
        self._namespace = namespace
        self._default_top_k = default_top_k
        self._max_top_k = max_top_k

    def clamp_top_k(self, top_k: int | None) -> int:
        requested = self._default_top_k if top_k is None else top_k
        return max(1, min(requested, self._max_top_k))

    async def search(self, query: str, top_k: int | None = None) -> list[PersonMatch]:
        """Rank people by similarity to ``query``.

        Raises:
            ValueError: If the query is shorter than three characters.
            EmbeddingServiceError: If the query cannot be embedded.
            VectorIndexError: If the index query fails.
        """
        query = query.strip()
        if len(query) < MIN_QUERY_LENGTH:
            raise ValueError(
                f"Query must be at least {MIN_QUERY_LENGTH} characters long"
            )
        limit = self.clamp_top_k(top_k)

        vector = await self._embedder.embed_query(query)
        matches = await self._vectors.query(self._namespace, vector, top_k=limit)
        ids = [m.id for m in matches if m.id]
        people = await self._store.fetch_people_by_external_ids(ids)

        logger.info("Search %r: %d matches (top_k=%d)", query, len(matches), limit)
        return [to_person_match(m, people.get(m.id)) for m in matches]
