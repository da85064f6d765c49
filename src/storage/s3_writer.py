# src/storage/s3_writer.py — v2
"""S3-compatible artifact storage (ARTIFACT_WRITER=s3).

Supports AWS S3, MinIO, and other S3-compatible storage.
Requires 'boto3' package: pip install boto3.
"""

from __future__ import annotations

import logging
from typing import Any

from peoplefinder.storage.base_output_writer import BaseArtifactWriter

logger = logging.getLogger(__name__)

_MISSING_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class S3Writer(BaseArtifactWriter):
    """Store artifacts in S3-compatible object storage."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "peoplefinder/",
        region: str | None = None,
        endpoint_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        """Initialize S3 writer.

        Args:
            bucket: S3 bucket name.
            prefix: Key prefix for all objects (e.g. "peoplefinder/").
            region: AWS region (optional, uses boto3 default if not set).
            endpoint_url: Custom endpoint for MinIO/compatible storage.
            client: Pre-built S3 client (tests).
        """
        if client is None:
            try:
                import boto3
            except ImportError as e:
                raise ImportError(
                    "boto3 package required for S3 writer: pip install boto3"
                ) from e

            kwargs: dict = {}
            if region:
                kwargs["region_name"] = region
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            client = boto3.client("s3", **kwargs)

        self._s3 = client
        self._bucket = bucket
        self._prefix = prefix.rstrip("/") + "/" if prefix else ""

    def _full_key(self, path: str) -> str:
        """Build the full S3 key from a relative path."""
        return f"{self._prefix}{path.lstrip('/')}"

    async def write(self, path: str, content: bytes | str) -> None:
        """Write content to S3."""
        key = self._full_key(path)
        body = content.encode("utf-8") if isinstance(content, str) else content
        self._s3.put_object(
            Bucket=self._bucket,
            Key=key,
            Body=body,
            ContentType="application/json",
        )
        logger.debug("S3 write: s3://%s/%s (%d bytes)", self._bucket, key, len(body))

    async def read(self, path: str) -> bytes:
        """Read content from S3."""
        from botocore.exceptions import ClientError

        key = self._full_key(path)
        try:
            response = self._s3.get_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise FileNotFoundError(self.describe(path)) from e
            raise
        return response["Body"].read()

    async def exists(self, path: str) -> bool:
        """Check if an S3 object exists."""
        from botocore.exceptions import ClientError

        try:
            self._s3.head_object(Bucket=self._bucket, Key=self._full_key(path))
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                return False
            raise
        return True

    def describe(self, path: str) -> str:
        return f"s3://{self._bucket}/{self._full_key(path)}"
