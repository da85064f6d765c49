# src/graph/selection.py — v1
"""Which artifact candidates one ingestor run processes.

Either a sequential window (start index + limit) or a uniform random
sample. For sampling, the first ``ignore_first`` candidates (default: the
start index) are skipped before the shuffle.
"""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class SelectionOptions:
    start_index: int = 0
    limit: int | None = None
    randomize: bool = False
    sample_size: int | None = None
    ignore_first: int | None = None

    def __post_init__(self) -> None:
        for name in ("start_index", "ignore_first"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be >= 0")
        for name in ("limit", "sample_size"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be greater than 0")

    def describe(self, total: int) -> str:
        if self.randomize:
            return f"random sample (skipped first {min(self.skip_count, total)})"
        end = total if self.limit is None else min(self.start_index + self.limit, total)
        return f"indices {min(self.start_index, total)}-{end - 1}"

    @property
    def skip_count(self) -> int:
        return self.ignore_first if self.ignore_first is not None else self.start_index


def select_candidates(
    usernames: list[str],
    options: SelectionOptions,
    rng: random.Random | None = None,
) -> list[str]:
    """Slice or sample the candidate list without mutating it."""
    if options.randomize:
        pool = list(usernames[options.skip_count:])
        (rng or random.Random()).shuffle(pool)
        size = options.sample_size or options.limit
        return pool[:size] if size is not None else pool

    window = usernames[options.start_index:]
    if options.limit is not None:
        window = window[:options.limit]
    return list(window)
