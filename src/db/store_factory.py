# src/db/store_factory.py — v1
"""Factory for relational store instantiation."""

from __future__ import annotations

from peoplefinder.config.settings import ConfigurationError, Settings
from peoplefinder.db.base_store import BaseRelationalStore


def create_store(settings: Settings) -> BaseRelationalStore:
    """Instantiate the configured relational backend.

    Raises:
        ConfigurationError: If the backend's connection setting is missing.
    """
    backend = settings.db_backend

    if backend == "sqlite":
        from peoplefinder.db.sqlite_store import SqliteRelationalStore
        if settings.sqlite_path is None:
            raise ConfigurationError("SQLITE_PATH must be set when DB_BACKEND=sqlite")
        return SqliteRelationalStore(settings.sqlite_path)

    if backend == "postgres":
        from peoplefinder.db.postgres_store import PostgresRelationalStore
        if not settings.database_url:
            raise ConfigurationError("DATABASE_URL must be set when DB_BACKEND=postgres")
        return PostgresRelationalStore(settings.database_url)

    raise ValueError(f"Unsupported relational backend: {backend!r}")
