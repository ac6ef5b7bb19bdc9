"""Tests for the current-span slot."""

from __future__ import annotations

import asyncio

import pytest

from aiobs.context import get_current_span_id, new_span_id, set_current_span_id, span_scope


class TestSpanSlot:
    def test_set_returns_previous(self):
        assert set_current_span_id("a") is None
        assert set_current_span_id("b") == "a"
        assert get_current_span_id() == "b"

    def test_new_span_ids_are_unique_hex(self):
        ids = {new_span_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(len(i) == 16 and int(i, 16) >= 0 for i in ids)

    def test_scope_restores(self):
        set_current_span_id("outer")
        with span_scope("inner") as current:
            assert current == "inner"
            assert get_current_span_id() == "inner"
        assert get_current_span_id() == "outer"

    def test_scope_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with span_scope("inner"):
                raise RuntimeError("boom")
        assert get_current_span_id() is None


class TestTaskIsolation:
    async def test_interleaved_tasks_keep_their_own_span(self):
        seen: dict[str, str | None] = {}

        async def worker(name: str) -> None:
            with span_scope(name):
                await asyncio.sleep(0)
                await asyncio.sleep(0)
                seen[name] = get_current_span_id()

        await asyncio.gather(worker("a"), worker("b"))
        assert seen == {"a": "a", "b": "b"}
        assert get_current_span_id() is None
