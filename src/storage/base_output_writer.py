# src/storage/base_output_writer.py — v2
"""Abstract artifact storage interface.

The batch artifact handed from the collector to the ingestor can live on
the local filesystem or in object storage; both expose the same three
operations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseArtifactWriter(ABC):
    """Unified interface for artifact storage backends."""

    @abstractmethod
    async def write(self, path: str, content: bytes | str) -> None:
        """Write content to the given path, replacing any previous content."""

    @abstractmethod
    async def read(self, path: str) -> bytes:
        """Read content from the given path.

        Raises:
            FileNotFoundError: If nothing is stored at ``path``.
        """

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check if path exists."""

    @abstractmethod
    def describe(self, path: str) -> str:
        """Human-readable location of ``path`` for log lines."""
