# Copyright (c) 2025 sprowii
"""Журнал резко негативных сообщений для проверки админами.

negative_messages:{chat_id} - список JSON-записей, новые первыми, не больше
MAX_REVIEW_ENTRIES. Текст сообщения шифруется, если задан DATA_ENCRYPTION_KEY.
"""
import json
import time
from dataclasses import asdict, dataclass
from typing import Callable, List

from groupwarden.logging_config import log
from groupwarden.security.data_protection import protect_text, pseudonymize_chat_id, reveal_text
from groupwarden.storage.kv import KeyValueStore, run_blocking

MAX_REVIEW_ENTRIES = 200


@dataclass
class ReviewEntry:
    user_id: int
    message_id: int
    text: str
    sentiment: str
    score: float
    timestamp: float


class ReviewLog:
    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock

    def add(self, chat_id: int, user_id: int, message_id: int, text: str, sentiment: str, score: float) -> None:
        entry = ReviewEntry(
            user_id=user_id,
            message_id=message_id,
            text=protect_text(text),
            sentiment=sentiment,
            score=score,
            timestamp=self.clock(),
        )
        key = f"negative_messages:{chat_id}"
        self.store.lpush(key, json.dumps(asdict(entry), ensure_ascii=False))
        self.store.ltrim(key, 0, MAX_REVIEW_ENTRIES - 1)
        log.info(f"Негативное сообщение сохранено для проверки в чате {pseudonymize_chat_id(chat_id)}")

    def recent(self, chat_id: int, limit: int = 10) -> List[ReviewEntry]:
        """Последние записи с расшифрованным текстом."""
        entries = []
        for raw in self.store.lrange(f"negative_messages:{chat_id}", 0, limit - 1):
            try:
                entry = ReviewEntry(**json.loads(raw))
            except (json.JSONDecodeError, TypeError) as exc:
                log.warning(f"Некорректная запись журнала проверки: {exc}")
                continue
            revealed = reveal_text(entry.text)
            entry.text = revealed if revealed is not None else "[зашифровано]"
            entries.append(entry)
        return entries

    async def add_async(self, chat_id: int, user_id: int, message_id: int, text: str, sentiment: str, score: float) -> None:
        await run_blocking(self.add, chat_id, user_id, message_id, text, sentiment, score)

    async def recent_async(self, chat_id: int, limit: int = 10) -> List[ReviewEntry]:
        return await run_blocking(self.recent, chat_id, limit)
