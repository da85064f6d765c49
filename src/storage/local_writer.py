# src/storage/local_writer.py — v3
"""Local filesystem artifact storage (default backend).

Writes go to a sibling temp file first and are renamed into place, so a
reader never sees a half-written artifact.
"""

from __future__ import annotations

import os
from pathlib import Path

from peoplefinder.storage.base_output_writer import BaseArtifactWriter


class LocalWriter(BaseArtifactWriter):
    """Store artifacts on the local filesystem."""

    def __init__(self, base_path: str | Path | None = None) -> None:
        """Initialize with optional base path.

        Args:
            base_path: Root directory for all writes. If None, paths are
                used as given (absolute or relative to the working dir).
        """
        self._base = Path(base_path).expanduser() if base_path else None

    def _resolve(self, path: str) -> Path:
        """Resolve a path relative to base_path."""
        if self._base is not None:
            return self._base / path
        return Path(path).expanduser()

    async def write(self, path: str, content: bytes | str) -> None:
        """Write content to a local file path."""
        p = self._resolve(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        data = content.encode("utf-8") if isinstance(content, str) else content
        tmp = p.with_name(f".{p.name}.tmp")
        tmp.write_bytes(data)
        os.replace(tmp, p)

    async def read(self, path: str) -> bytes:
        """Read content from a local file path."""
        return self._resolve(path).read_bytes()

    async def exists(self, path: str) -> bool:
        """Check if a local path exists."""
        return self._resolve(path).exists()

    def describe(self, path: str) -> str:
        return str(self._resolve(path))
