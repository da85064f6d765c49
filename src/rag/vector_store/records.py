# src/rag/vector_store/records.py — v1
"""Vector ids and metadata for profile and post records.

Profiles are keyed by their external id; posts by "post:<post id>" so
the two can never collide even if they share an index.
"""

from __future__ import annotations

from typing import Any

from peoplefinder.core.models import PendingPost, PersonRow, VectorRecord, XProfile

POST_ID_PREFIX = "post:"
METADATA_TEXT_LIMIT = 800


def compact(metadata: dict[str, Any]) -> dict[str, Any]:
    """Drop None, empty strings and empty lists."""
    return {k: v for k, v in metadata.items() if v is not None and v != "" and v != []}


def profile_metadata(profile: XProfile) -> dict[str, Any]:
    """Metadata attached when a profile is ingested."""
    return compact({
        "user_id": profile.id,
        "username": profile.username,
        "name": profile.name,
        "followers": profile.metrics.followers_count,
        "description": profile.description,
        "location": profile.location,
        "verified_type": profile.verified_type,
    })


def person_metadata(person: PersonRow) -> dict[str, Any]:
    """Full metadata for a stored person, including derived fields."""
    return compact({
        "user_id": person.x_user_id,
        "name": person.name,
        "followers": person.x_followers_count or 0,
        "following": person.x_following_count or 0,
        "listed": person.x_listed_count or 0,
        "tweet_count": person.x_post_count or 0,
        "verified": bool(person.x_verified),
        "username": person.x_username,
        "description": person.x_description,
        "location": person.x_location,
        "url": person.x_url,
        "verified_type": person.x_verified_type,
        "derived_summary": person.derived_summary,
        "derived_topics": person.derived_topics,
    })


def post_vector_id(post_id: str) -> str:
    return f"{POST_ID_PREFIX}{post_id}"


def post_record(post: PendingPost, values: list[float]) -> VectorRecord:
    """Vector record for one post with a bounded text excerpt."""
    return VectorRecord(
        id=post_vector_id(post.post_id),
        values=values,
        metadata=compact({
            "type": "post",
            "post_id": post.post_id,
            "user_id": post.x_user_id,
            "person_id": post.person_id,
            "username": post.x_username,
            "name": post.name,
            "posted_at": post.posted_at.isoformat(),
            "text": post.text[:METADATA_TEXT_LIMIT],
        }),
    )
