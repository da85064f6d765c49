# tests/unit/logging/test_unit_context.py — v2
"""Tests for logging/context.py — per-worker logging context."""

from __future__ import annotations

import asyncio

import pytest

from peoplefinder.logging.context import (
    clear_context,
    get_context,
    set_worker_context,
    worker_context,
)


class TestLogContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_initial_state(self):
        ctx = get_context()
        assert ctx.worker is None
        assert ctx.shard is None
        assert ctx.run_id is None

    def test_set_worker_context(self):
        set_worker_context("keyA", "keyA:worker-1-of-2", "run1")
        ctx = get_context()
        assert ctx.worker == "keyA"
        assert ctx.shard == "keyA:worker-1-of-2"
        assert ctx.run_id == "run1"

    def test_as_dict_filters_none(self):
        set_worker_context("keyA")
        d = get_context().as_dict()
        assert d == {"worker": "keyA"}

    def test_scoped_context_restores_previous(self):
        set_worker_context("outer", "s0")
        with worker_context("inner", shard="s1"):
            assert get_context().worker == "inner"
            assert get_context().shard == "s1"
        assert get_context().worker == "outer"
        assert get_context().shard == "s0"

    @pytest.mark.asyncio
    async def test_concurrent_tasks_keep_their_own_context(self):
        seen: dict[str, str | None] = {}

        async def run(name: str) -> None:
            with worker_context(name, shard=f"{name}-shard"):
                await asyncio.sleep(0)
                seen[name] = get_context().shard

        await asyncio.gather(run("a"), run("b"))
        assert seen == {"a": "a-shard", "b": "b-shard"}
