# Copyright (c) 2025 sprowii
"""Статистика групп и активность участников.

Ключи:
- group:{chat_id}:stats:{joins|leaves|messages} - счётчики группы (INCR)
- user:{user_id}:joined:{chat_id} - время входа (unix, секунды)
- user:{user_id}:messages:{chat_id} - число сообщений (INCR)
- user:{user_id}:last_activity:{chat_id} - время последнего сообщения
"""
import time
from dataclasses import dataclass
from typing import Callable

from groupwarden.storage.kv import KeyValueStore, run_blocking

DAY_SEC = 24 * 60 * 60

# Минимальный уровень доверия для медиа и пересланных сообщений
MEDIA_TRUST_LEVEL = 2
FORWARD_TRUST_LEVEL = 3


@dataclass
class GroupStats:
    joins: int
    leaves: int
    messages: int


def trust_level(joined_at, message_count: int, warnings: int, now: float) -> int:
    """Грубая оценка доверия к участнику: 1 - новичок, 2 - обычный, 3 - доверенный.

    Args:
        joined_at: Время входа или None, если вход не зафиксирован
        message_count: Сообщений в группе
        warnings: Активных предупреждений
        now: Текущее время
    """
    if joined_at is None or warnings > 0:
        return 1
    days = (now - joined_at) / DAY_SEC
    if days < 1 or message_count < 10:
        return 1
    if days < 7 or message_count < 50:
        return 2
    return 3


def _int(raw) -> int:
    return int(raw) if raw else 0


class ActivityTracker:
    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock

    def record_join(self, chat_id: int, user_id: int) -> None:
        self.store.incr(f"group:{chat_id}:stats:joins")
        self.store.set(f"user:{user_id}:joined:{chat_id}", str(self.clock()))

    def record_leave(self, chat_id: int) -> None:
        self.store.incr(f"group:{chat_id}:stats:leaves")

    def record_message(self, chat_id: int, user_id: int) -> None:
        self.store.incr(f"group:{chat_id}:stats:messages")
        self.store.incr(f"user:{user_id}:messages:{chat_id}")
        self.store.set(f"user:{user_id}:last_activity:{chat_id}", str(self.clock()))

    def stats(self, chat_id: int) -> GroupStats:
        return GroupStats(
            joins=_int(self.store.get(f"group:{chat_id}:stats:joins")),
            leaves=_int(self.store.get(f"group:{chat_id}:stats:leaves")),
            messages=_int(self.store.get(f"group:{chat_id}:stats:messages")),
        )

    def user_trust_level(self, chat_id: int, user_id: int, warnings: int) -> int:
        joined = self.store.get(f"user:{user_id}:joined:{chat_id}")
        message_count = _int(self.store.get(f"user:{user_id}:messages:{chat_id}"))
        joined_at = float(joined) if joined else None
        return trust_level(joined_at, message_count, warnings, self.clock())

    async def record_join_async(self, chat_id: int, user_id: int) -> None:
        await run_blocking(self.record_join, chat_id, user_id)

    async def record_leave_async(self, chat_id: int) -> None:
        await run_blocking(self.record_leave, chat_id)

    async def record_message_async(self, chat_id: int, user_id: int) -> None:
        await run_blocking(self.record_message, chat_id, user_id)

    async def stats_async(self, chat_id: int) -> GroupStats:
        return await run_blocking(self.stats, chat_id)

    async def user_trust_level_async(self, chat_id: int, user_id: int, warnings: int) -> int:
        return await run_blocking(self.user_trust_level, chat_id, user_id, warnings)


def format_stats(stats: GroupStats) -> str:
    return (
        "📈 <b>Статистика группы</b>\n\n"
        f"➕ Вступили: {stats.joins}\n"
        f"➖ Вышли: {stats.leaves}\n"
        f"💬 Сообщений: {stats.messages}"
    )
