# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for credentials, request budgets, worker caps and
logging. Every worker validates the fields it needs with require() before
doing any work, so a missing credential fails fast at startup.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is missing or internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Relational store ===
    db_backend: Literal["postgres", "sqlite"] = "postgres"
    database_url: str = ""
    sqlite_path: Path | None = None

    # === External social-graph API ===
    x_api_base_url: str = "https://api.x.com/2"
    x_api_bearer_token: str = ""
    x_max_retries: int = 5
    x_following_reqs_per_15m: int = 15
    x_by_username_interval_s: float = 3.0
    x_tweets_reqs_per_15m: int = 10_000
    http_timeout_s: float = 30.0

    # === Embeddings ===
    embedding_provider: str = "openai"
    embedding_model: str = "text-embedding-3-large"
    embedding_dimensions: int = 3072
    openai_api_key: str = ""

    # === Vector index ===
    vector_db_type: Literal["pinecone", "chromadb"] = "pinecone"
    pinecone_api_key: str = ""
    pinecone_index_host: str = ""
    vector_db_path: Path = Path("~/.peoplefinder/vectordb")
    vector_profiles_namespace: str = "users"
    vector_posts_namespace: str = "messages"

    # === Batch artifact ===
    artifact_writer: Literal["local", "s3"] = "local"
    first_degree_path: str = "data/first-degree-following.json"
    artifact_s3_bucket: str = ""
    artifact_s3_prefix: str = "peoplefinder/"
    artifact_s3_region: str = ""

    # === Post fetch workers ===
    post_worker_index: int = 0
    post_worker_total: int = 1
    post_worker_name: str = "default"
    post_worker_api_env: str = "X_API_BEARER_TOKEN"
    post_shard_key: str = ""
    post_max_pages: int | None = None
    post_max_users: int = 200
    post_max_posts: int = 25
    post_workers_config: str = ""
    heartbeat_interval_s: float = 60.0

    # === Post embedding worker ===
    post_embed_batch: int = 32
    post_embed_max_batches: int | None = None

    # === Profile refresh ===
    profile_refresh_max_age_days: int = 7

    # === Search ===
    search_default_top_k: int = 6
    search_max_top_k: int = 10

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "x_following_reqs_per_15m",
        "x_by_username_interval_s",
        "x_tweets_reqs_per_15m",
        "post_worker_total",
        "post_embed_batch",
        "heartbeat_interval_s",
    )
    @classmethod
    def validate_positive(cls, v: float, info) -> float:  # noqa: N805
        """Budgets, intervals and batch sizes must be strictly positive."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be greater than 0")
        return v

    @field_validator("x_max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:  # noqa: N805
        if v < 0:
            raise ValueError("x_max_retries must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if not 0 <= self.post_worker_index < self.post_worker_total:
            errors.append(
                "POST_WORKER_INDEX must be within [0, POST_WORKER_TOTAL)"
            )

        if self.db_backend == "sqlite" and self.sqlite_path is None:
            errors.append("DB_BACKEND=sqlite requires SQLITE_PATH")

        if self.artifact_writer == "s3" and not self.artifact_s3_bucket:
            errors.append("ARTIFACT_WRITER=s3 requires ARTIFACT_S3_BUCKET")

        if self.search_default_top_k > self.search_max_top_k:
            errors.append("SEARCH_DEFAULT_TOP_K must be <= SEARCH_MAX_TOP_K")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def window_seconds(self) -> float:
        """Length of the external API's fixed rate-limit window."""
        return 15 * 60.0


def require(settings: Settings, *fields: str) -> None:
    """Fail fast when any of the named settings is empty.

    The relational store is satisfied by either DATABASE_URL (postgres) or
    SQLITE_PATH (sqlite), so "database_url" is checked against the backend.

    Raises:
        ConfigurationError: Listing every missing field.
    """
    missing: list[str] = []
    for name in fields:
        if name == "database_url" and settings.db_backend == "sqlite":
            if settings.sqlite_path is None:
                missing.append("SQLITE_PATH")
            continue
        if not getattr(settings, name):
            missing.append(name.upper())
    if missing:
        raise ConfigurationError(
            f"Missing required configuration: {', '.join(missing)}"
        )


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
