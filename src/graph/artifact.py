# src/graph/artifact.py — v1
"""Batch artifact: the hand-off between the graph collector and ingestor.

A versioned JSON document with camelCase keys:

    {
      "version": 1,
      "generatedAt": "...",
      "seedsProcessed": 3,
      "totalApiRequests": 7,
      "totalFollowingsFetched": 812,
      "uniqueNewUsernames": 640,
      "edgeCount": 812,
      "usernames": ["alice", "bob"],
      "edges": [{"followerDbId": 1, "followerXUserId": "11", "followingUsername": "bob"}]
    }

Written once per collector run; safe to read (and ingest) any number of
times.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from peoplefinder.storage.base_output_writer import BaseArtifactWriter

logger = logging.getLogger(__name__)

ARTIFACT_VERSION = 1


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EdgeIntent(_CamelModel):
    """A seed follows a candidate handle; flushed once the handle resolves."""

    follower_db_id: int
    follower_x_user_id: str
    following_username: str


class BatchArtifact(_CamelModel):
    """Immutable snapshot written by the collector."""

    version: int = ARTIFACT_VERSION
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    seeds_processed: int = 0
    total_api_requests: int = 0
    total_followings_fetched: int = 0
    unique_new_usernames: int = 0
    edge_count: int = 0
    usernames: list[str] = Field(default_factory=list)
    edges: list[EdgeIntent] = Field(default_factory=list)

    @model_validator(mode="after")
    def fill_counts(self) -> BatchArtifact:
        if not self.unique_new_usernames:
            self.unique_new_usernames = len(self.usernames)
        if not self.edge_count:
            self.edge_count = len(self.edges)
        return self

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class ArtifactError(ValueError):
    """Stored artifact is unreadable or has an unsupported version."""


async def write_artifact(
    writer: BaseArtifactWriter, path: str, artifact: BatchArtifact
) -> None:
    await writer.write(path, artifact.to_json())
    logger.info(
        "Wrote batch artifact to %s (%d usernames, %d edges)",
        writer.describe(path), len(artifact.usernames), len(artifact.edges),
    )


async def read_artifact(writer: BaseArtifactWriter, path: str) -> BatchArtifact:
    """Load and validate a stored artifact.

    Raises:
        FileNotFoundError: If no artifact exists at ``path``.
        ArtifactError: If the document is invalid or from a newer version.
    """
    raw = await writer.read(path)
    try:
        artifact = BatchArtifact.model_validate_json(raw)
    except ValidationError as e:
        raise ArtifactError(f"Invalid batch artifact at {writer.describe(path)}: {e}") from e
    if artifact.version > ARTIFACT_VERSION:
        raise ArtifactError(
            f"Batch artifact version {artifact.version} is newer than supported "
            f"{ARTIFACT_VERSION}"
        )
    return artifact
