# Copyright (c) 2025 sprowii
"""Система предупреждений (warns) для модерации групп.

Ключи:
- warnings:{chat_id}:{user_id} - счётчик предупреждений (INCR, TTL 24 часа)
- warning_details:{chat_id}:{user_id} - журнал причин, новые первыми

Окно в 24 часа отсчитывается от первого предупреждения: повторные
предупреждения срок жизни счётчика и журнала не продлевают.
"""
import json
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, List

from groupwarden.logging_config import log
from groupwarden.moderation.models import GroupSettings, WarningEntry
from groupwarden.security.data_protection import safe_log_action
from groupwarden.storage.kv import KeyValueStore, run_blocking

WARNING_TTL_SEC = 24 * 60 * 60
MAX_WARNING_LOG_ENTRIES = 50


class WarnEscalation(Enum):
    """Результат эскалации после добавления предупреждения."""
    NONE = "none"
    BAN = "ban"


@dataclass
class WarnResult:
    """Результат добавления предупреждения.

    Attributes:
        total_warns: Количество предупреждений после добавления
        escalation: NONE или BAN
        remaining: Сколько предупреждений осталось до бана (0 при BAN)
    """
    total_warns: int
    escalation: WarnEscalation
    remaining: int


def evaluate(count: int, settings: GroupSettings) -> WarnResult:
    """Определить эскалацию для количества предупреждений.

    Бан наступает, когда count достигает settings.max_warnings.
    """
    if count >= settings.max_warnings:
        return WarnResult(total_warns=count, escalation=WarnEscalation.BAN, remaining=0)
    return WarnResult(
        total_warns=count,
        escalation=WarnEscalation.NONE,
        remaining=settings.max_warnings - count,
    )


def _count_key(chat_id: int, user_id: int) -> str:
    return f"warnings:{chat_id}:{user_id}"


def _log_key(chat_id: int, user_id: int) -> str:
    return f"warning_details:{chat_id}:{user_id}"


class WarningLedger:
    """Счётчик предупреждений с истечением и журнал причин."""

    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock

    def add_warning(self, chat_id: int, user_id: int, reason: str) -> int:
        """Добавить предупреждение пользователю.

        Args:
            chat_id: ID группы
            user_id: ID пользователя
            reason: Причина предупреждения

        Returns:
            Количество предупреждений после инкремента
        """
        count_key = _count_key(chat_id, user_id)
        log_key = _log_key(chat_id, user_id)
        count = self.store.incr(count_key)
        if count == 1:
            # Новое окно: журнал прошлого окна не переносим
            self.store.delete(log_key)
            self.store.expire(count_key, WARNING_TTL_SEC)

        entry = WarningEntry(reason=reason, timestamp=self.clock(), warning_number=count)
        self.store.lpush(log_key, json.dumps(asdict(entry), ensure_ascii=False))
        self.store.ltrim(log_key, 0, MAX_WARNING_LOG_ENTRIES - 1)
        if count == 1:
            self.store.expire(log_key, WARNING_TTL_SEC)

        log.info(safe_log_action("warn", user_id, chat_id, reason) + f" total={count}")
        return count

    def get_count(self, chat_id: int, user_id: int) -> int:
        raw_value = self.store.get(_count_key(chat_id, user_id))
        return int(raw_value) if raw_value else 0

    def get_log(self, chat_id: int, user_id: int) -> List[WarningEntry]:
        """Журнал предупреждений, новые первыми."""
        entries = []
        for raw in self.store.lrange(_log_key(chat_id, user_id), 0, -1):
            try:
                entries.append(WarningEntry(**json.loads(raw)))
            except (json.JSONDecodeError, TypeError) as exc:
                log.warning(f"Некорректная запись журнала предупреждений: {exc}")
        return entries

    def clear(self, chat_id: int, user_id: int) -> None:
        self.store.delete(_count_key(chat_id, user_id), _log_key(chat_id, user_id))
        log.info(safe_log_action("clear_warns", user_id, chat_id))

    async def add_warning_async(self, chat_id: int, user_id: int, reason: str) -> int:
        return await run_blocking(self.add_warning, chat_id, user_id, reason)

    async def get_count_async(self, chat_id: int, user_id: int) -> int:
        return await run_blocking(self.get_count, chat_id, user_id)

    async def get_log_async(self, chat_id: int, user_id: int) -> List[WarningEntry]:
        return await run_blocking(self.get_log, chat_id, user_id)

    async def clear_async(self, chat_id: int, user_id: int) -> None:
        await run_blocking(self.clear, chat_id, user_id)


def format_warning_notice(mention: str, result: WarnResult, reason: str) -> str:
    """Текст для группы после предупреждения."""
    if result.escalation == WarnEscalation.BAN:
        return f"🚫 {mention} забанен: достигнут лимит предупреждений ({result.total_warns})."
    return (
        f"⚠️ {mention}, предупреждение {result.total_warns}. Причина: {reason}\n"
        f"До бана осталось: {result.remaining}"
    )
