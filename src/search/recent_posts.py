# src/search/recent_posts.py — v1
"""Recent posts of one person, resolved by external id or handle."""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import BaseModel

from peoplefinder.core.errors import NotFoundError
from peoplefinder.core.models import StoredPost
from peoplefinder.db.base_store import BaseRelationalStore

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
MAX_LIMIT = 20


class RecentPost(BaseModel):
    post_id: str
    text: str
    posted_at: datetime
    like_count: int | None = None
    reply_count: int | None = None
    repost_count: int | None = None
    quote_count: int | None = None
    username: str | None = None
    name: str | None = None
    url: str | None = None


def permalink(username: str | None, post_id: str) -> str | None:
    if not username or not post_id:
        return None
    return f"https://x.com/{username}/status/{post_id}"


def to_recent_post(row: StoredPost) -> RecentPost:
    return RecentPost(
        post_id=row.post_id,
        text=row.text,
        posted_at=row.posted_at,
        like_count=row.like_count,
        reply_count=row.reply_count,
        repost_count=row.repost_count,
        quote_count=row.quote_count,
        username=row.x_username,
        name=row.name,
        url=permalink(row.x_username, row.post_id),
    )


async def recent_posts(
    store: BaseRelationalStore, identifier: str, limit: int | None = None
) -> list[RecentPost]:
    """Newest posts of the person behind ``identifier``.

    Raises:
        ValueError: If ``identifier`` is empty or ``limit`` is out of [1, 20].
        NotFoundError: If no person matches the identifier.
    """
    identifier = identifier.strip().lstrip("@")
    if not identifier:
        raise ValueError("Provide an external id or username")
    limit = DEFAULT_LIMIT if limit is None else limit
    if not 1 <= limit <= MAX_LIMIT:
        raise ValueError(f"limit must be within [1, {MAX_LIMIT}]")

    person = await store.resolve_person(identifier)
    if person is None:
        raise NotFoundError(f"Unable to resolve person '{identifier}'")

    rows = await store.recent_posts(person.id, limit)
    logger.info("Loaded %d recent posts for %s", len(rows), person.label)
    return [to_recent_post(r) for r in rows]
