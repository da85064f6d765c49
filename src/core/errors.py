# src/core/errors.py — v1
"""Error taxonomy shared by clients, stores and workers.

Per-item errors are caught by the smallest enclosing worker loop and turned
into a counted outcome; only configuration errors and the embedding
worker's batch failure end a run with a non-zero exit.
"""

from __future__ import annotations


class PeopleFinderError(Exception):
    """Base class for all pipeline errors."""


class NotFoundError(PeopleFinderError):
    """Target entity or handle does not exist (upstream or locally)."""


class RateLimitExhausted(PeopleFinderError):
    """Throttling persisted past the maximum number of retries."""

    def __init__(self, operation: str, attempts: int) -> None:
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Rate limit exceeded after {attempts} retries for {operation}"
        )


class ExternalApiError(PeopleFinderError):
    """Non-success, non-throttling response from the social-graph API."""

    def __init__(self, status: int, body: str, operation: str = "") -> None:
        self.status = status
        self.body = body
        self.operation = operation
        prefix = f"{operation}: " if operation else ""
        super().__init__(f"{prefix}X API error {status} - {body or 'Unknown error'}")


class EmbeddingServiceError(PeopleFinderError):
    """Embedding call failed or returned an empty vector."""


class VectorIndexError(PeopleFinderError):
    """Non-success response from the vector index service."""

    def __init__(self, status: int, body: str, operation: str = "") -> None:
        self.status = status
        self.body = body
        self.operation = operation
        prefix = f"{operation} " if operation else ""
        super().__init__(
            f"Vector index {prefix}error ({status}): {body or '<empty>'}"
        )
