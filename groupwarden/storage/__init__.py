# Copyright (c) 2025 sprowii
from groupwarden.storage.kv import KeyValueStore, RedisKeyValueStore, get_store, run_blocking
from groupwarden.storage.memory import MemoryKeyValueStore

__all__ = [
    "KeyValueStore",
    "RedisKeyValueStore",
    "MemoryKeyValueStore",
    "get_store",
    "run_blocking",
]
