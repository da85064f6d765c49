# src/config/workers.py — v1
"""Declarative post-fetch worker definitions.

Several Post Fetch Workers can run side by side, each bound to its own API
credential and a disjoint shard. Definitions come from POST_WORKERS_CONFIG
(a JSON object or array); when that is empty a single definition is built
from the POST_WORKER_* settings.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping

from pydantic import BaseModel, Field, ValidationError, model_validator

from peoplefinder.config.settings import ConfigurationError, Settings


class PostWorkerDefinition(BaseModel):
    """One named Post Fetch Worker and the env var holding its credential."""

    name: str
    api_key_env: str = Field(default="X_API_BEARER_TOKEN", alias="apiKeyEnv")
    worker_index: int = Field(default=0, alias="workerIndex")
    worker_total: int = Field(default=1, alias="workerTotal")
    requests_per_15m: int | None = Field(default=None, alias="requestsPer15Minutes")
    max_pages_per_user: int | None = Field(default=None, alias="maxPagesPerUser")
    max_users_per_run: int | None = Field(default=None, alias="maxUsersPerRun")
    max_posts_per_user: int | None = Field(default=None, alias="maxTweetsPerUser")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def validate_shard(self) -> PostWorkerDefinition:
        if self.worker_total <= 0:
            raise ValueError("workerTotal must be greater than 0")
        if not 0 <= self.worker_index < self.worker_total:
            raise ValueError("workerIndex must be within [0, workerTotal)")
        return self


def parse_worker_definitions(settings: Settings) -> list[PostWorkerDefinition]:
    """Build the worker list from settings.

    Raises:
        ConfigurationError: If POST_WORKERS_CONFIG is not valid JSON or a
            definition fails validation.
    """
    raw = settings.post_workers_config.strip()
    if not raw:
        return [
            PostWorkerDefinition(
                name=settings.post_worker_name,
                api_key_env=settings.post_worker_api_env,
                worker_index=settings.post_worker_index,
                worker_total=settings.post_worker_total,
                requests_per_15m=settings.x_tweets_reqs_per_15m,
                max_pages_per_user=settings.post_max_pages,
                max_users_per_run=settings.post_max_users,
                max_posts_per_user=settings.post_max_posts,
            )
        ]

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Unable to parse POST_WORKERS_CONFIG JSON: {e}"
        ) from e

    items = parsed if isinstance(parsed, list) else [parsed]
    definitions: list[PostWorkerDefinition] = []
    for item in items:
        try:
            definitions.append(PostWorkerDefinition.model_validate(item))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid worker definition {item!r}: {e}") from e

    names = [d.name for d in definitions]
    if len(set(names)) != len(names):
        raise ConfigurationError(f"Duplicate worker names in POST_WORKERS_CONFIG: {names}")
    return definitions


def resolve_credentials(
    definitions: list[PostWorkerDefinition],
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Map each worker name to its bearer token.

    Every credential is resolved up front so a missing one aborts the whole
    launch before any worker starts.

    Raises:
        ConfigurationError: Naming every worker whose env var is unset.
    """
    env = os.environ if environ is None else environ
    tokens: dict[str, str] = {}
    missing: list[str] = []
    for definition in definitions:
        token = env.get(definition.api_key_env, "")
        if not token:
            missing.append(f'"{definition.api_key_env}" for worker "{definition.name}"')
            continue
        tokens[definition.name] = token
    if missing:
        raise ConfigurationError(f"Missing bearer token env {', '.join(missing)}")
    return tokens
