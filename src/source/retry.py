# src/source/retry.py — v1
"""Bounded retry on throttling responses with exponential backoff.

Per-operation base delays: profile lookup 3s, following edges 10s,
posts 15s. A Retry-After hint from the server always wins over the
computed backoff.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

from peoplefinder.core.errors import RateLimitExhausted

logger = logging.getLogger(__name__)

MAX_RETRIES = 5


@dataclass(frozen=True)
class RetryConfig:
    """Backoff configuration for one client operation."""

    max_retries: int = MAX_RETRIES
    base_delay_s: float = 10.0
    backoff_factor: float = 2.0
    jitter: bool = False


DEFAULT_RETRY_CONFIGS: dict[str, RetryConfig] = {
    "profile": RetryConfig(base_delay_s=3.0),
    "following": RetryConfig(base_delay_s=10.0),
    "posts": RetryConfig(base_delay_s=15.0),
}


def _compute_delay(config: RetryConfig, attempt: int) -> float:
    """Compute delay for a given attempt (0-based)."""
    delay = config.base_delay_s * (config.backoff_factor ** attempt)
    if config.jitter:
        delay *= 0.5 + random.random()  # noqa: S311
    return delay


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a Retry-After header, or None when absent or unparseable."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return max(seconds, 0.0)


async def send_with_retry(
    send: Callable[[], Awaitable[httpx.Response]],
    *,
    operation: str,
    config: RetryConfig | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> httpx.Response:
    """Call ``send`` until it returns a non-429 response.

    Returns the first non-throttled response, whatever its status; status
    handling beyond 429 belongs to the caller.

    Raises:
        RateLimitExhausted: If the server still throttles after
            ``config.max_retries`` retries.
    """
    cfg = config or DEFAULT_RETRY_CONFIGS.get(operation, RetryConfig())
    attempt = 0

    while True:
        response = await send()
        if response.status_code != 429:
            return response

        if attempt >= cfg.max_retries:
            raise RateLimitExhausted(operation, attempt)

        hinted = parse_retry_after(response.headers.get("Retry-After"))
        delay = hinted if hinted is not None else _compute_delay(cfg, attempt)
        attempt += 1
        logger.warning(
            "Rate limited on '%s' (attempt %d/%d), sleeping %.1fs",
            operation, attempt, cfg.max_retries, delay,
        )
        await sleep(delay)
