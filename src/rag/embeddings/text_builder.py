# src/rag/embeddings/text_builder.py — v1
"""Embedding input texts for profiles and posts.

Profile text lines, in order and only when present: name, @handle,
derived summary, description, "Topics: ...", "Location: ...".
Post text: a "@handle" (or "user:<id>") header, an ISO timestamp, then the
raw post text on the next line.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from peoplefinder.core.models import PendingPost, PersonRow, XProfile


def build_profile_text(
    *,
    name: str | None = None,
    username: str | None = None,
    description: str | None = None,
    location: str | None = None,
    derived_summary: str | None = None,
    derived_topics: Sequence[str] | None = None,
) -> str:
    parts: list[str] = []
    if name:
        parts.append(name)
    if username:
        parts.append(f"@{username}")
    if derived_summary:
        parts.append(derived_summary)
    if description:
        parts.append(description)
    if derived_topics:
        parts.append(f"Topics: {', '.join(derived_topics)}")
    if location:
        parts.append(f"Location: {location}")
    return "\n".join(parts)


def profile_text(
    profile: XProfile,
    derived_summary: str | None = None,
    derived_topics: Sequence[str] | None = None,
) -> str:
    """Embedding text for a freshly resolved profile."""
    return build_profile_text(
        name=profile.name,
        username=profile.username,
        description=profile.description,
        location=profile.location,
        derived_summary=derived_summary,
        derived_topics=derived_topics,
    )


def person_text(person: PersonRow) -> str:
    """Embedding text for a stored person, including derived fields."""
    return build_profile_text(
        name=person.name,
        username=person.x_username,
        description=person.x_description,
        location=person.x_location,
        derived_summary=person.derived_summary,
        derived_topics=person.derived_topics,
    )


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def build_post_text(post: PendingPost) -> str:
    header = f"@{post.x_username}" if post.x_username else f"user:{post.x_user_id}"
    return f"{header} — {_iso(post.posted_at)}\n{post.text}"
