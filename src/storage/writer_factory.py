# src/storage/writer_factory.py — v3
"""Factory: instantiate artifact storage from configuration."""

from __future__ import annotations

from peoplefinder.config.settings import ConfigurationError, Settings
from peoplefinder.storage.base_output_writer import BaseArtifactWriter
from peoplefinder.storage.local_writer import LocalWriter


def create_writer(settings: Settings) -> BaseArtifactWriter:
    """Create the artifact storage backend named by ARTIFACT_WRITER.

    Raises:
        ConfigurationError: If s3 is selected without a bucket.
        ValueError: If writer type is not supported.
    """
    if settings.artifact_writer == "local":
        return LocalWriter()

    if settings.artifact_writer == "s3":
        from peoplefinder.storage.s3_writer import S3Writer
        if not settings.artifact_s3_bucket:
            raise ConfigurationError(
                "ARTIFACT_S3_BUCKET must be set when ARTIFACT_WRITER=s3"
            )
        return S3Writer(
            bucket=settings.artifact_s3_bucket,
            prefix=settings.artifact_s3_prefix,
            region=settings.artifact_s3_region or None,
        )

    raise ValueError(f"Unsupported artifact writer: {settings.artifact_writer!r}")
