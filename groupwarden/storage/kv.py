# Copyright (c) 2025 sprowii
"""Key-value хранилище, на котором живёт всё состояние бота.

Обработчики вебхуков не держат состояния в памяти: настройки, варны, captcha,
опросы и счётчики лежат во внешнем хранилище, доступном всем инстансам.
Компоненты модерации зависят только от интерфейса KeyValueStore, поэтому
в тестах вместо Redis подставляется MemoryKeyValueStore.
"""
import asyncio
from abc import ABC, abstractmethod
from functools import partial
from typing import Any, Callable, List, Optional, TypeVar

import redis

from groupwarden import config

T = TypeVar("T")


class KeyValueStore(ABC):
    """Минимальный набор операций Redis, нужный модерации."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Записать значение. ttl в секундах, None - без срока жизни."""

    @abstractmethod
    def delete(self, *keys: str) -> int:
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def incr(self, key: str) -> int:
        """Атомарный инкремент. Отсутствующий ключ считается нулём."""

    @abstractmethod
    def expire(self, key: str, ttl: int) -> None:
        ...

    @abstractmethod
    def lpush(self, key: str, value: str) -> int:
        ...

    @abstractmethod
    def lrange(self, key: str, start: int, end: int) -> List[str]:
        """Срез списка, end включительно (как LRANGE)."""

    @abstractmethod
    def ltrim(self, key: str, start: int, end: int) -> None:
        ...

    @abstractmethod
    def llen(self, key: str) -> int:
        ...


class RedisKeyValueStore(KeyValueStore):
    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        if ttl:
            self.client.setex(key, ttl, value)
        else:
            self.client.set(key, value)

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return self.client.delete(*keys)

    def exists(self, key: str) -> bool:
        return self.client.exists(key) > 0

    def incr(self, key: str) -> int:
        return int(self.client.incr(key))

    def expire(self, key: str, ttl: int) -> None:
        self.client.expire(key, ttl)

    def lpush(self, key: str, value: str) -> int:
        return self.client.lpush(key, value)

    def lrange(self, key: str, start: int, end: int) -> List[str]:
        return self.client.lrange(key, start, end)

    def ltrim(self, key: str, start: int, end: int) -> None:
        self.client.ltrim(key, start, end)

    def llen(self, key: str) -> int:
        return self.client.llen(key)


_store: Optional[KeyValueStore] = None


def get_store() -> KeyValueStore:
    """Общий Redis-клиент процесса (создаётся лениво)."""
    global _store
    if _store is None:
        if not config.REDIS_URL:
            raise RuntimeError("Переменная окружения REDIS_URL должна быть установлена")
        _store = RedisKeyValueStore.from_url(config.REDIS_URL)
    return _store


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Выполнить блокирующий вызов хранилища вне event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))
