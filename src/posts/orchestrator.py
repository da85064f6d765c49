# src/posts/orchestrator.py — v1
"""Worker orchestrator: run every configured post fetch worker at once.

Each worker gets its own credential, its own rate budget and a disjoint
shard, so no budget is shared. Every definition and credential is checked
before the first worker starts. Workers run concurrently and are awaited
independently: one failure never cancels its siblings, and failures are
raised only after all of them have settled.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from peoplefinder.config.settings import Settings
from peoplefinder.config.workers import parse_worker_definitions, resolve_credentials
from peoplefinder.core.errors import PeopleFinderError
from peoplefinder.db.base_store import BaseRelationalStore
from peoplefinder.posts.fetch_worker import (
    FetchSummary,
    PostFetchWorkerConfig,
    run_post_fetch_worker,
)
from peoplefinder.source.x_client import XApiClient

logger = logging.getLogger(__name__)


class WorkerFailures(PeopleFinderError):
    """One or more post fetch workers ended with an unhandled error."""

    def __init__(self, failures: dict[str, BaseException]) -> None:
        self.failures = failures
        detail = "; ".join(f"{name}: {err}" for name, err in failures.items())
        super().__init__(f"{len(failures)} worker(s) failed: {detail}")


@dataclass
class WorkerOutcome:
    name: str
    summary: FetchSummary | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def _heartbeat(interval_s: float, tasks: list[asyncio.Task]) -> None:
    while True:
        await asyncio.sleep(interval_s)
        running = sum(1 for t in tasks if not t.done())
        logger.info("Heartbeat: %d/%d workers running", running, len(tasks))


async def run_workers(
    settings: Settings,
    store: BaseRelationalStore,
    *,
    environ: Mapping[str, str] | None = None,
    client_factory: Callable[[str], XApiClient] | None = None,
) -> list[WorkerOutcome]:
    """Launch all configured post fetch workers and wait for every one.

    Raises:
        ConfigurationError: If a definition is invalid or a credential is
            missing; raised before any worker starts.
        WorkerFailures: If any worker raised, after all workers settled.
    """
    definitions = parse_worker_definitions(settings)
    tokens = resolve_credentials(definitions, environ)
    configs = [PostFetchWorkerConfig.from_definition(d, settings) for d in definitions]
    if not configs:
        logger.info("No post fetch workers configured, nothing to do")
        return []

    make_client = client_factory or (
        lambda token: XApiClient.from_settings(settings, bearer_token=token)
    )
    clients: dict[str, XApiClient] = {}
    heartbeat: asyncio.Task | None = None
    try:
        for c in configs:
            clients[c.name] = make_client(tokens[c.name])

        logger.info(
            "Launching %d post fetch worker(s): %s",
            len(configs), ", ".join(c.name for c in configs),
        )
        tasks = [
            asyncio.create_task(
                run_post_fetch_worker(c, store, clients[c.name]), name=f"post-worker-{c.name}"
            )
            for c in configs
        ]
        heartbeat = asyncio.create_task(_heartbeat(settings.heartbeat_interval_s, tasks))
        results = await asyncio.gather(*tasks, return_exceptions=True)
    finally:
        if heartbeat is not None:
            heartbeat.cancel()
            await asyncio.gather(heartbeat, return_exceptions=True)
        for client in clients.values():
            await client.aclose()

    outcomes: list[WorkerOutcome] = []
    failures: dict[str, BaseException] = {}
    for config, result in zip(configs, results):
        if isinstance(result, BaseException):
            logger.error("Worker '%s' failed: %s", config.name, result)
            failures[config.name] = result
            outcomes.append(WorkerOutcome(config.name, error=result))
        else:
            outcomes.append(WorkerOutcome(config.name, summary=result))

    if failures:
        raise WorkerFailures(failures)
    logger.info("All %d post fetch workers finished", len(outcomes))
    return outcomes
