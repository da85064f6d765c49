# src/main.py — v2
"""CLI entry point — one subcommand per worker.

Usage:
    peoplefinder collect [--max-pages N]
    peoplefinder ingest [--start-index N] [--limit N] [--random] [--sample-size N] [--ignore-first N]
    peoplefinder fetch-posts [--index I --total T] [--max-pages N] [--max-users N] [--max-posts N]
    peoplefinder run-workers
    peoplefinder embed-posts [--batch-size N] [--max-batches N]
    peoplefinder backfill-profiles
    peoplefinder refresh-profiles [--limit N]
    peoplefinder search <query> [--top-k N]
    peoplefinder recent-posts <id-or-handle> [--limit N]

Every command validates the settings it needs before doing any work and
exits 1 on a configuration error. A completed run exits 0 even if single
items failed; the post embedding worker exits 1 when it stopped on a
failed batch.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import sys
from contextlib import AsyncExitStack

from dotenv import dotenv_values

from peoplefinder.config.settings import ConfigurationError, Settings, load_settings, require
from peoplefinder.logging.logger import setup_logging
from peoplefinder.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = load_settings()
    except (ConfigurationError, ValueError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    setup_logging(
        "DEBUG" if args.verbose else settings.log_level,
        settings.log_format,
        settings.log_file,
        settings.log_rotation,
        settings.log_retention,
    )

    try:
        return asyncio.run(args.func(args, settings))
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got {value}")
    return number


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="peoplefinder",
        description=f"peoplefinder v{__version__} — social-graph ingestion workers",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- init-db ---
    p_init = subparsers.add_parser(
        "init-db", help="Create the relational schema if it is missing",
    )
    p_init.set_defaults(func=_cmd_init_db)

    # --- collect ---
    p_collect = subparsers.add_parser(
        "collect", help="Collect first-degree followings of seed people",
    )
    p_collect.add_argument(
        "--max-pages", type=_positive_int, default=None,
        help="Cap following pages per seed (default: all)",
    )
    p_collect.set_defaults(func=_cmd_collect)

    # --- ingest ---
    p_ingest = subparsers.add_parser(
        "ingest", help="Resolve batch artifact candidates into people and edges",
    )
    p_ingest.add_argument("--start-index", type=_non_negative_int, default=0)
    p_ingest.add_argument("--limit", type=_positive_int, default=None)
    p_ingest.add_argument(
        "--random", dest="randomize", action="store_true",
        help="Process a uniform random sample instead of a window",
    )
    p_ingest.add_argument("--sample-size", type=_positive_int, default=None)
    p_ingest.add_argument(
        "--ignore-first", type=_non_negative_int, default=None,
        help="Candidates to skip before sampling (default: --start-index)",
    )
    p_ingest.set_defaults(func=_cmd_ingest)

    # --- fetch-posts ---
    p_fetch = subparsers.add_parser(
        "fetch-posts", help="Run one post fetch worker over its shard",
    )
    p_fetch.add_argument("--index", type=_non_negative_int, default=None, help="Shard index")
    p_fetch.add_argument("--total", type=_positive_int, default=None, help="Shard total")
    p_fetch.add_argument("--name", default=None, help="Worker name")
    p_fetch.add_argument("--max-pages", type=_positive_int, default=None)
    p_fetch.add_argument("--max-users", type=_positive_int, default=None)
    p_fetch.add_argument("--max-posts", type=_positive_int, default=None)
    p_fetch.set_defaults(func=_cmd_fetch_posts)

    # --- run-workers ---
    p_workers = subparsers.add_parser(
        "run-workers", help="Run every configured post fetch worker concurrently",
    )
    p_workers.set_defaults(func=_cmd_run_workers)

    # --- embed-posts ---
    p_embed = subparsers.add_parser(
        "embed-posts", help="Embed stored posts into the vector index",
    )
    p_embed.add_argument("--batch-size", type=_positive_int, default=None)
    p_embed.add_argument("--max-batches", type=_positive_int, default=None)
    p_embed.set_defaults(func=_cmd_embed_posts)

    # --- backfill-profiles ---
    p_backfill = subparsers.add_parser(
        "backfill-profiles", help="Embed people missing from the profiles namespace",
    )
    p_backfill.set_defaults(func=_cmd_backfill_profiles)

    # --- refresh-profiles ---
    p_refresh = subparsers.add_parser(
        "refresh-profiles", help="Re-resolve unresolved or stale profiles",
    )
    p_refresh.add_argument("--limit", type=_positive_int, default=None)
    p_refresh.set_defaults(func=_cmd_refresh_profiles)

    # --- search ---
    p_search = subparsers.add_parser("search", help="Find people by description")
    p_search.add_argument("query", help="Natural-language description")
    p_search.add_argument("--top-k", type=int, default=None)
    p_search.set_defaults(func=_cmd_search)

    # --- recent-posts ---
    p_recent = subparsers.add_parser("recent-posts", help="Show a person's newest posts")
    p_recent.add_argument("identifier", help="External id or handle")
    p_recent.add_argument("--limit", type=int, default=None)
    p_recent.set_defaults(func=_cmd_recent_posts)

    return parser


# === COMMANDS ===


async def _cmd_init_db(args: argparse.Namespace, settings: Settings) -> int:
    from peoplefinder.db.store_factory import create_store

    require(settings, "database_url")
    store = create_store(settings)
    try:
        await store.ensure_schema()
    finally:
        await store.close()
    logger.info("Relational schema ready (%s backend)", settings.db_backend)
    return 0


async def _cmd_collect(args: argparse.Namespace, settings: Settings) -> int:
    from peoplefinder.db.store_factory import create_store
    from peoplefinder.graph.artifact import write_artifact
    from peoplefinder.graph.collector import GraphCollector
    from peoplefinder.source.rate_limiter import RateLimiter
    from peoplefinder.source.x_client import XApiClient
    from peoplefinder.storage.writer_factory import create_writer

    require(settings, "database_url", "x_api_bearer_token")
    writer = create_writer(settings)

    async with AsyncExitStack() as stack:
        store = create_store(settings)
        stack.push_async_callback(store.close)
        client = await stack.enter_async_context(XApiClient.from_settings(settings))
        limiter = RateLimiter(
            settings.x_following_reqs_per_15m, settings.window_seconds, name="following",
        )
        collector = GraphCollector(store, client, limiter, max_pages_per_seed=args.max_pages)
        artifact = await collector.run()

    await write_artifact(writer, settings.first_degree_path, artifact)
    print("\nCollect complete:")
    print(f"  Seeds:          {artifact.seeds_processed}")
    print(f"  API requests:   {artifact.total_api_requests}")
    print(f"  Followings:     {artifact.total_followings_fetched}")
    print(f"  New usernames:  {artifact.unique_new_usernames}")
    print(f"  Edge intents:   {artifact.edge_count}")
    return 0


async def _cmd_ingest(args: argparse.Namespace, settings: Settings) -> int:
    from peoplefinder.db.store_factory import create_store
    from peoplefinder.graph.artifact import read_artifact
    from peoplefinder.graph.ingestor import GraphIngestor
    from peoplefinder.graph.selection import SelectionOptions
    from peoplefinder.rag.embeddings.embedder_factory import create_embedder
    from peoplefinder.rag.vector_store.vector_store_factory import create_vector_store
    from peoplefinder.source.rate_limiter import RateLimiter
    from peoplefinder.source.x_client import XApiClient
    from peoplefinder.storage.writer_factory import create_writer

    require(settings, "database_url", "x_api_bearer_token", "openai_api_key")
    options = SelectionOptions(
        start_index=args.start_index,
        limit=args.limit,
        randomize=args.randomize,
        sample_size=args.sample_size,
        ignore_first=args.ignore_first,
    )
    artifact = await read_artifact(create_writer(settings), settings.first_degree_path)

    async with AsyncExitStack() as stack:
        store = create_store(settings)
        stack.push_async_callback(store.close)
        vector_store = create_vector_store(settings)
        stack.push_async_callback(vector_store.close)
        client = await stack.enter_async_context(XApiClient.from_settings(settings))
        limiter = RateLimiter.from_interval(settings.x_by_username_interval_s, name="profile")
        ingestor = GraphIngestor(
            store, client, limiter, create_embedder(settings), vector_store,
            profiles_namespace=settings.vector_profiles_namespace,
        )
        summary = await ingestor.run(artifact, options)

    print("\nIngest complete:")
    print(f"  Selected:   {summary.selected}")
    print(f"  Inserted:   {summary.inserted}")
    print(f"  Updated:    {summary.updated}")
    print(f"  Reused:     {summary.reused}")
    print(f"  Skipped:    {summary.skipped}")
    print(f"  Errors:     {summary.errors}")
    print(f"  Embedded:   {summary.embedded}")
    print(f"  Edges:      {summary.edges_inserted}")
    return 0


async def _cmd_fetch_posts(args: argparse.Namespace, settings: Settings) -> int:
    from peoplefinder.db.store_factory import create_store
    from peoplefinder.posts.fetch_worker import PostFetchWorkerConfig, run_post_fetch_worker
    from peoplefinder.source.x_client import XApiClient

    require(settings, "database_url")
    token = _worker_env(settings).get(settings.post_worker_api_env, "")
    if not token:
        raise ConfigurationError(
            f"Missing bearer token env \"{settings.post_worker_api_env}\""
        )

    config = PostFetchWorkerConfig.from_settings(settings)
    overrides = {
        "worker_index": args.index,
        "worker_total": args.total,
        "name": args.name,
        "max_pages_per_user": args.max_pages,
        "max_users_per_run": args.max_users,
        "max_posts_per_user": args.max_posts,
    }
    config = dataclasses.replace(
        config, **{k: v for k, v in overrides.items() if v is not None}
    )

    async with AsyncExitStack() as stack:
        store = create_store(settings)
        stack.push_async_callback(store.close)
        client = await stack.enter_async_context(
            XApiClient.from_settings(settings, bearer_token=token)
        )
        summary = await run_post_fetch_worker(config, store, client)

    print(f"\nPost fetch complete ({summary.shard_key}):")
    print(f"  People:     {summary.targets}")
    print(f"  Completed:  {summary.completed}")
    print(f"  Failed:     {summary.failed}")
    print(f"  Posts:      {summary.posts_stored}")
    print(f"  Requests:   {summary.api_requests}")
    return 0


async def _cmd_run_workers(args: argparse.Namespace, settings: Settings) -> int:
    from peoplefinder.db.store_factory import create_store
    from peoplefinder.posts.orchestrator import WorkerFailures, run_workers

    require(settings, "database_url")
    store = create_store(settings)
    try:
        outcomes = await run_workers(settings, store, environ=_worker_env(settings))
    except WorkerFailures as exc:
        logger.error("%s", exc)
        return 1
    finally:
        await store.close()

    for outcome in outcomes:
        if outcome.summary is not None:
            s = outcome.summary
            print(
                f"  {outcome.name}: {s.completed}/{s.targets} people, "
                f"{s.failed} failed, {s.posts_stored} posts"
            )
    return 0


async def _cmd_embed_posts(args: argparse.Namespace, settings: Settings) -> int:
    from peoplefinder.db.store_factory import create_store
    from peoplefinder.posts.embed_worker import run_post_embed_worker
    from peoplefinder.rag.embeddings.embedder_factory import create_embedder
    from peoplefinder.rag.vector_store.vector_store_factory import create_vector_store

    require(settings, "database_url", "openai_api_key")
    async with AsyncExitStack() as stack:
        store = create_store(settings)
        stack.push_async_callback(store.close)
        vector_store = create_vector_store(settings)
        stack.push_async_callback(vector_store.close)
        summary = await run_post_embed_worker(
            store,
            create_embedder(settings),
            vector_store,
            namespace=settings.vector_posts_namespace,
            batch_size=args.batch_size or settings.post_embed_batch,
            max_batches=args.max_batches or settings.post_embed_max_batches,
        )

    print("\nPost embedding complete:")
    print(f"  Batches:   {summary.batches}")
    print(f"  Embedded:  {summary.embedded}")
    print(f"  Failed:    {summary.failed}")
    if summary.stopped_on_error:
        logger.error("Stopped on a failed batch: %s", summary.last_error)
        return 1
    return 0


async def _cmd_backfill_profiles(args: argparse.Namespace, settings: Settings) -> int:
    from peoplefinder.db.store_factory import create_store
    from peoplefinder.profiles.backfill import backfill_profile_vectors
    from peoplefinder.rag.embeddings.embedder_factory import create_embedder
    from peoplefinder.rag.vector_store.vector_store_factory import create_vector_store

    require(settings, "database_url", "openai_api_key")
    async with AsyncExitStack() as stack:
        store = create_store(settings)
        stack.push_async_callback(store.close)
        vector_store = create_vector_store(settings)
        stack.push_async_callback(vector_store.close)
        summary = await backfill_profile_vectors(
            store, create_embedder(settings), vector_store,
            namespace=settings.vector_profiles_namespace,
        )

    print("\nBackfill complete:")
    print(f"  Checked:          {summary.checked}")
    print(f"  Already indexed:  {summary.already_indexed}")
    print(f"  Embedded:         {summary.embedded}")
    print(f"  Errors:           {summary.errors}")
    return 0


async def _cmd_refresh_profiles(args: argparse.Namespace, settings: Settings) -> int:
    from peoplefinder.db.store_factory import create_store
    from peoplefinder.profiles.refresh import ProfileRefresher
    from peoplefinder.rag.embeddings.embedder_factory import create_embedder
    from peoplefinder.rag.vector_store.vector_store_factory import create_vector_store
    from peoplefinder.source.rate_limiter import RateLimiter
    from peoplefinder.source.x_client import XApiClient

    require(settings, "database_url", "x_api_bearer_token", "openai_api_key")
    async with AsyncExitStack() as stack:
        store = create_store(settings)
        stack.push_async_callback(store.close)
        vector_store = create_vector_store(settings)
        stack.push_async_callback(vector_store.close)
        client = await stack.enter_async_context(XApiClient.from_settings(settings))
        refresher = ProfileRefresher(
            store,
            client,
            RateLimiter.from_interval(settings.x_by_username_interval_s, name="profile"),
            create_embedder(settings),
            vector_store,
            namespace=settings.vector_profiles_namespace,
            max_age_days=settings.profile_refresh_max_age_days,
        )
        summary = await refresher.run(limit=args.limit)

    print("\nRefresh complete:")
    print(f"  Selected:   {summary.selected}")
    print(f"  Refreshed:  {summary.refreshed}")
    print(f"  Skipped:    {summary.skipped}")
    print(f"  Errors:     {summary.errors}")
    return 0


async def _cmd_search(args: argparse.Namespace, settings: Settings) -> int:
    from peoplefinder.db.store_factory import create_store
    from peoplefinder.rag.embeddings.embedder_factory import create_embedder
    from peoplefinder.rag.vector_store.vector_store_factory import create_vector_store
    from peoplefinder.search.people_search import PeopleSearch

    require(settings, "database_url", "openai_api_key")
    async with AsyncExitStack() as stack:
        store = create_store(settings)
        stack.push_async_callback(store.close)
        vector_store = create_vector_store(settings)
        stack.push_async_callback(vector_store.close)
        search = PeopleSearch(
            store, create_embedder(settings), vector_store,
            namespace=settings.vector_profiles_namespace,
            default_top_k=settings.search_default_top_k,
            max_top_k=settings.search_max_top_k,
        )
        try:
            results = await search.search(args.query, args.top_k)
        except ValueError as exc:
            logger.error("%s", exc)
            return 1

    print(json.dumps({"results": [r.model_dump() for r in results]}, indent=2))
    return 0


async def _cmd_recent_posts(args: argparse.Namespace, settings: Settings) -> int:
    from peoplefinder.core.errors import NotFoundError
    from peoplefinder.db.store_factory import create_store
    from peoplefinder.search.recent_posts import recent_posts

    require(settings, "database_url")
    store = create_store(settings)
    try:
        posts = await recent_posts(store, args.identifier, args.limit)
    except (NotFoundError, ValueError) as exc:
        logger.error("%s", exc)
        return 1
    finally:
        await store.close()

    print(json.dumps({"posts": [p.model_dump(mode="json") for p in posts]}, indent=2))
    return 0


def _worker_env(settings: Settings) -> dict[str, str]:
    """Process env layered over .env, so worker credentials may live in either."""
    env: dict[str, str] = {
        k: v for k, v in dotenv_values(".env").items() if v is not None
    }
    if settings.x_api_bearer_token:
        env.setdefault("X_API_BEARER_TOKEN", settings.x_api_bearer_token)
    env.update(os.environ)
    return env


if __name__ == "__main__":
    sys.exit(main())
