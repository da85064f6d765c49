# src/__init__.py — v1
"""peoplefinder: social-graph ingestion and shard-scheduling workers."""

from peoplefinder.version import __version__

__all__ = ["__version__"]
