# Copyright (c) 2025 sprowii
"""Правила антиспама без обращения к модели.

Сообщение считается спамом, если выполняется хотя бы одно:
- содержит запрещённое слово (без учёта регистра)
- содержит ссылку, не подходящую ни под один разрешённый фрагмент
- больше 70% заглавных букв при длине больше 10 символов
- как минимум 3 из 5 последних сообщений пользователя совпадают с ним дословно

История последних сообщений: recent_messages:{chat_id}:{user_id},
не больше 10 записей, TTL 5 минут.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from groupwarden.logging_config import log
from groupwarden.moderation.models import GroupSettings
from groupwarden.security.data_protection import pseudonymize_id
from groupwarden.storage.kv import KeyValueStore, run_blocking

URL_REGEX = re.compile(r"https?://[^\s]+")

CAPS_RATIO_THRESHOLD = 0.7
CAPS_MIN_LENGTH = 10
REPEAT_WINDOW = 5
REPEAT_THRESHOLD = 3
HISTORY_SIZE = 10
HISTORY_TTL_SEC = 300


class SpamRule(str, Enum):
    """Сработавшее правило."""
    NONE = "none"
    BANNED_WORD = "banned_word"
    LINK = "link"
    CAPS = "caps"
    REPEAT = "repeat"


@dataclass
class SpamCheckResult:
    rule: SpamRule
    detail: Optional[str] = None

    @property
    def is_spam(self) -> bool:
        return self.rule != SpamRule.NONE


def find_banned_word(text: str, banned_words: List[str]) -> Optional[str]:
    lowered = text.lower()
    for word in banned_words:
        if word and word.lower() in lowered:
            return word
    return None


def find_unapproved_link(text: str, allowed_links: List[str]) -> Optional[str]:
    allowed = [a.lower() for a in allowed_links if a]
    for url in URL_REGEX.findall(text.lower()):
        if not any(fragment in url for fragment in allowed):
            return url
    return None


def caps_ratio(text: str) -> float:
    if not text:
        return 0.0
    return sum(1 for ch in text if ch.isupper()) / len(text)


def is_shouting(text: str) -> bool:
    return len(text) > CAPS_MIN_LENGTH and caps_ratio(text) > CAPS_RATIO_THRESHOLD


def _history_key(chat_id: int, user_id: int) -> str:
    return f"recent_messages:{chat_id}:{user_id}"


class SpamFilter:
    """Проверка сообщения по правилам и ведение истории повторов."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def check_content(self, text: str, settings: GroupSettings) -> SpamCheckResult:
        """Правила, не зависящие от истории пользователя."""
        word = find_banned_word(text, settings.banned_words)
        if word:
            return SpamCheckResult(SpamRule.BANNED_WORD, word)

        url = find_unapproved_link(text, settings.allowed_links)
        if url:
            return SpamCheckResult(SpamRule.LINK, url)

        if is_shouting(text):
            return SpamCheckResult(SpamRule.CAPS)

        return SpamCheckResult(SpamRule.NONE)

    def is_repeated(self, chat_id: int, user_id: int, text: str) -> bool:
        recent = self.store.lrange(_history_key(chat_id, user_id), 0, REPEAT_WINDOW - 1)
        return sum(1 for message in recent if message == text) >= REPEAT_THRESHOLD

    def remember(self, chat_id: int, user_id: int, text: str) -> None:
        key = _history_key(chat_id, user_id)
        self.store.lpush(key, text)
        self.store.ltrim(key, 0, HISTORY_SIZE - 1)
        self.store.expire(key, HISTORY_TTL_SEC)

    def check(self, chat_id: int, user_id: int, text: str, settings: GroupSettings) -> SpamCheckResult:
        """Полная проверка. Не-спам попадает в историю для будущих проверок повторов."""
        result = self.check_content(text, settings)
        if not result.is_spam and self.is_repeated(chat_id, user_id, text):
            result = SpamCheckResult(SpamRule.REPEAT)

        if result.is_spam:
            log.info(f"Спам от {pseudonymize_id(user_id)}: правило {result.rule.value}")
        else:
            self.remember(chat_id, user_id, text)
        return result

    async def check_async(self, chat_id: int, user_id: int, text: str, settings: GroupSettings) -> SpamCheckResult:
        return await run_blocking(self.check, chat_id, user_id, text, settings)
