# Copyright (c) 2025 sprowii
"""In-memory реализация KeyValueStore с поддержкой TTL.

Используется в тестах и для локального запуска без Redis. Время берётся
из переданной функции clock, чтобы можно было проверять истечение ключей.
"""
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple, Union

from groupwarden.storage.kv import KeyValueStore

_Value = Union[str, List[str]]


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._data: Dict[str, Tuple[_Value, Optional[float]]] = {}
        self._lock = threading.RLock()

    def _live(self, key: str) -> Optional[_Value]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def _expires_at(self, key: str) -> Optional[float]:
        entry = self._data.get(key)
        return entry[1] if entry else None

    def _list(self, key: str) -> List[str]:
        value = self._live(key)
        if value is None:
            return []
        if not isinstance(value, list):
            raise TypeError(f"WRONGTYPE: ключ {key} не является списком")
        return value

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._live(key)
            if isinstance(value, list):
                raise TypeError(f"WRONGTYPE: ключ {key} является списком")
            return value

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        with self._lock:
            expires_at = self.clock() + ttl if ttl else None
            self._data[key] = (value, expires_at)

    def delete(self, *keys: str) -> int:
        with self._lock:
            removed = 0
            for key in keys:
                if self._live(key) is not None:
                    del self._data[key]
                    removed += 1
            return removed

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def incr(self, key: str) -> int:
        with self._lock:
            current = self.get(key)
            value = int(current) + 1 if current is not None else 1
            # INCR сохраняет TTL существующего ключа
            self._data[key] = (str(value), self._expires_at(key) if current is not None else None)
            return value

    def expire(self, key: str, ttl: int) -> None:
        with self._lock:
            value = self._live(key)
            if value is not None:
                self._data[key] = (value, self.clock() + ttl)

    def lpush(self, key: str, value: str) -> int:
        with self._lock:
            items = self._list(key)
            expires_at = self._expires_at(key) if items else None
            items = [value] + items
            self._data[key] = (items, expires_at)
            return len(items)

    def lrange(self, key: str, start: int, end: int) -> List[str]:
        with self._lock:
            items = self._list(key)
            stop = len(items) if end == -1 else end + 1
            return list(items[start:stop])

    def ltrim(self, key: str, start: int, end: int) -> None:
        with self._lock:
            items = self._list(key)
            if not items:
                return
            stop = len(items) if end == -1 else end + 1
            trimmed = items[start:stop]
            if trimmed:
                self._data[key] = (trimmed, self._expires_at(key))
            else:
                del self._data[key]

    def llen(self, key: str) -> int:
        with self._lock:
            return len(self._list(key))
