# Copyright (c) 2025 sprowii
"""Tests for the in-memory key-value store."""

import pytest

from groupwarden.storage.memory import MemoryKeyValueStore
from groupwarden.storage.kv import run_blocking


class TestMemoryKeyValueStore:
    def test_set_and_get(self, store):
        store.set("a", "1")
        assert store.get("a") == "1"
        assert store.get("missing") is None

    def test_ttl_expires(self, store, clock):
        store.set("a", "1", ttl=10)
        clock.advance(9)
        assert store.exists("a")
        clock.advance(1)
        assert store.get("a") is None
        assert not store.exists("a")

    def test_incr_keeps_existing_ttl(self, store, clock):
        assert store.incr("counter") == 1
        store.expire("counter", 60)
        clock.advance(30)
        assert store.incr("counter") == 2
        clock.advance(30)
        assert store.get("counter") is None

    def test_delete_counts_removed_keys(self, store):
        store.set("a", "1")
        store.lpush("b", "x")
        assert store.delete("a", "b", "c") == 2

    def test_list_operations(self, store):
        for value in ["1", "2", "3", "4"]:
            store.lpush("list", value)
        assert store.lrange("list", 0, -1) == ["4", "3", "2", "1"]
        assert store.lrange("list", 0, 1) == ["4", "3"]
        store.ltrim("list", 0, 2)
        assert store.llen("list") == 3

    def test_wrong_type_raises(self, store):
        store.set("a", "1")
        with pytest.raises(TypeError):
            store.lpush("a", "x")

    def test_default_clock(self):
        store = MemoryKeyValueStore()
        store.set("a", "1", ttl=60)
        assert store.get("a") == "1"


class TestRunBlocking:
    @pytest.mark.asyncio
    async def test_runs_call_in_executor(self, store):
        await run_blocking(store.set, "a", "1", ttl=5)
        assert await run_blocking(store.get, "a") == "1"
