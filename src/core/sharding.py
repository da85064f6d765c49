# src/core/sharding.py — v1
"""Deterministic shard assignment: entity id mod total == index."""

from __future__ import annotations


def shard_of(entity_id: int, shard_total: int) -> int:
    """Return the shard index that owns an entity id."""
    if shard_total <= 0:
        raise ValueError("shard_total must be greater than 0")
    return entity_id % shard_total


def owns(entity_id: int, shard_index: int, shard_total: int) -> bool:
    """True if the shard at shard_index is responsible for entity_id."""
    return shard_of(entity_id, shard_total) == shard_index


def validate_shard(shard_index: int, shard_total: int) -> None:
    """Raise ValueError unless 0 <= shard_index < shard_total."""
    if shard_total <= 0:
        raise ValueError("shard_total must be greater than 0")
    if not 0 <= shard_index < shard_total:
        raise ValueError("shard_index must be within [0, shard_total)")


def shard_key(shard_index: int, shard_total: int, alias: str | None = None) -> str:
    """Human-readable key stored on progress records, e.g. 'keyA:worker-1-of-3'."""
    base = f"worker-{shard_index + 1}-of-{shard_total}"
    return f"{alias}:{base}" if alias else base
