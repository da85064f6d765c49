# src/source/x_client.py — v1
"""Client for the upstream social-graph API (profiles, following edges, posts).

Each public method performs one logical HTTP call. Throttling is retried
inside the call (see source.retry); not-found is returned as None or an
empty page; every other non-success status raises ExternalApiError.
Rate limiting between calls is the caller's job (see source.rate_limiter).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from peoplefinder.config.settings import Settings
from peoplefinder.core.errors import ExternalApiError
from peoplefinder.core.models import EdgePage, EdgeTarget, PostPage, XPost, XProfile
from peoplefinder.source.retry import DEFAULT_RETRY_CONFIGS, RetryConfig, send_with_retry

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    "id,username,name,description,location,profile_image_url,url,"
    "created_at,verified,verified_type,public_metrics"
)
POST_FIELDS = (
    "created_at,lang,public_metrics,conversation_id,"
    "in_reply_to_user_id,referenced_tweets"
)
MAX_FOLLOWING_RESULTS = 1000
MAX_POST_RESULTS = 100


def normalize_handle(handle: str) -> str:
    """Strip whitespace and a leading '@'."""
    return handle.strip().lstrip("@")


class XApiClient:
    """Async client over httpx bound to one bearer token."""

    def __init__(
        self,
        bearer_token: str,
        *,
        base_url: str = "https://api.x.com/2",
        timeout_s: float = 30.0,
        max_retries: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not bearer_token:
            raise ValueError("bearer_token is required")
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {bearer_token}",
                "Content-Type": "application/json",
            },
            timeout=timeout_s,
            transport=transport,
        )
        self._sleep = sleep
        self._retry = {
            op: RetryConfig(
                max_retries=max_retries,
                base_delay_s=cfg.base_delay_s,
                backoff_factor=cfg.backoff_factor,
            )
            for op, cfg in DEFAULT_RETRY_CONFIGS.items()
        }

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        bearer_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> XApiClient:
        return cls(
            bearer_token or settings.x_api_bearer_token,
            base_url=settings.x_api_base_url,
            timeout_s=settings.http_timeout_s,
            max_retries=settings.x_max_retries,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> XApiClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # --- Operations ---

    async def get_profile_by_handle(self, handle: str) -> XProfile | None:
        """Resolve a handle to a full profile, or None if it does not exist."""
        username = normalize_handle(handle)
        if not username:
            return None
        payload = await self._get(
            f"/users/by/username/{quote(username, safe='')}",
            params={"user.fields": PROFILE_FIELDS},
            operation="profile",
            label=f"@{username}",
        )
        if payload is None or not payload.get("data"):
            logger.info("User @%s not found", username)
            return None
        try:
            return XProfile.model_validate(payload["data"])
        except ValidationError as e:
            raise ExternalApiError(200, str(e), operation=f"profile @{username}") from e

    async def get_following_page(
        self, x_user_id: str, cursor: str | None = None
    ) -> EdgePage:
        """Fetch one page of accounts followed by ``x_user_id``."""
        params: dict[str, Any] = {
            "max_results": MAX_FOLLOWING_RESULTS,
            "user.fields": "id,username",
        }
        if cursor:
            params["pagination_token"] = cursor
        payload = await self._get(
            f"/users/{x_user_id}/following",
            params=params,
            operation="following",
            label=x_user_id,
        )
        if payload is None:
            return EdgePage()

        errors = payload.get("errors") or []
        if errors and not payload.get("data"):
            message = "; ".join(e.get("message") or "Unknown error" for e in errors)
            raise ExternalApiError(
                200, message, operation=f"following {x_user_id}"
            )

        meta = payload.get("meta") or {}
        targets = [
            EdgeTarget.model_validate(item)
            for item in payload.get("data") or []
            if item.get("id")
        ]
        return EdgePage(
            targets=targets,
            next_cursor=meta.get("next_token"),
            result_count=meta.get("result_count", len(targets)),
        )

    async def get_posts_page(
        self,
        x_user_id: str,
        cursor: str | None = None,
        max_results: int = MAX_POST_RESULTS,
    ) -> PostPage:
        """Fetch one page of an account's public posts, newest first."""
        params: dict[str, Any] = {
            "max_results": max(5, min(max_results, MAX_POST_RESULTS)),
            "tweet.fields": POST_FIELDS,
        }
        if cursor:
            params["pagination_token"] = cursor
        payload = await self._get(
            f"/users/{x_user_id}/tweets",
            params=params,
            operation="posts",
            label=x_user_id,
        )
        if payload is None:
            return PostPage()

        meta = payload.get("meta") or {}
        posts = [XPost.model_validate(item) for item in payload.get("data") or []]
        return PostPage(
            posts=posts,
            next_cursor=meta.get("next_token"),
            newest_id=meta.get("newest_id"),
            oldest_id=meta.get("oldest_id"),
            result_count=meta.get("result_count", len(posts)),
        )

    # --- Internals ---

    async def _get(
        self,
        path: str,
        *,
        params: dict[str, Any],
        operation: str,
        label: str,
    ) -> dict[str, Any] | None:
        """GET with throttling retries. Returns None on 404."""
        response = await send_with_retry(
            lambda: self._client.get(path, params=params),
            operation=operation,
            config=self._retry.get(operation),
            sleep=self._sleep,
        )
        if response.status_code == 404:
            return None
        if response.is_error:
            raise ExternalApiError(
                response.status_code, response.text, operation=f"{operation} {label}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise ExternalApiError(
                response.status_code, response.text, operation=f"{operation} {label}"
            ) from e
