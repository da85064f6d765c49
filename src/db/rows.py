# src/db/rows.py — v1
"""Row-shape normalization at the store boundary.

Drivers hand back results in different shapes: a list of records, a
mapping with a "rows" field, sqlite3.Row or asyncpg.Record objects, or
None for statements without a result set. Everything above the store only
ever sees a list of plain dicts.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any


def _as_dict(row: Any) -> dict[str, Any]:
    if isinstance(row, dict):
        return row
    if isinstance(row, Mapping):
        return dict(row.items())
    # sqlite3.Row exposes keys() and index access but is not a Mapping
    if hasattr(row, "keys"):
        return {key: row[key] for key in row.keys()}
    raise TypeError(f"Unsupported row type: {type(row).__name__}")


def to_rows(result: Any) -> list[dict[str, Any]]:
    """Normalize a driver result to an ordered list of dicts."""
    if result is None:
        return []
    if isinstance(result, Mapping) and "rows" in result:
        return to_rows(result["rows"])
    if isinstance(result, (str, bytes)):
        raise TypeError("Query result cannot be a string")
    if isinstance(result, Iterable):
        return [_as_dict(row) for row in result]
    raise TypeError(f"Unsupported result type: {type(result).__name__}")


def first_row(result: Any) -> dict[str, Any] | None:
    """First normalized row, or None when the result is empty."""
    rows = to_rows(result)
    return rows[0] if rows else None
