# Copyright (c) 2025 sprowii
"""Модели данных для системы модерации."""
import time
import uuid
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional


DEFAULT_BANNED_WORDS = ["spam", "scam"]


@dataclass
class GroupSettings:
    """Настройки модерации для конкретной группы.

    Отсутствующая запись в хранилище эквивалентна записи со значениями
    по умолчанию: антиспам и AI-модерация включены, мут новичков выключен.
    """
    chat_id: int

    welcome_enabled: bool = True
    welcome_message: Optional[str] = None

    anti_spam_enabled: bool = True
    ai_moderation_enabled: bool = True
    max_warnings: int = 3
    mute_new_users: bool = False
    delete_service_messages: bool = True

    allowed_links: List[str] = field(default_factory=list)
    banned_words: List[str] = field(default_factory=lambda: list(DEFAULT_BANNED_WORDS))

    auto_translate: bool = False
    target_language: str = "en"
    sentiment_analysis: bool = False

    media_filtering: bool = False
    forward_filtering: bool = False
    link_preview_disabled: bool = False

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls) if f.name != "chat_id"]

    @classmethod
    def from_dict(cls, chat_id: int, data: Dict[str, Any]) -> "GroupSettings":
        """Собрать настройки из сохранённого словаря, игнорируя лишние ключи."""
        known = set(cls.field_names())
        return cls(chat_id=chat_id, **{k: v for k, v in data.items() if k in known})


@dataclass
class VerificationSettings:
    chat_id: int
    enabled: bool = False

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls) if f.name != "chat_id"]

    @classmethod
    def from_dict(cls, chat_id: int, data: Dict[str, Any]) -> "VerificationSettings":
        known = set(cls.field_names())
        return cls(chat_id=chat_id, **{k: v for k, v in data.items() if k in known})


@dataclass
class WarningEntry:
    """Запись в журнале предупреждений пользователя."""
    reason: str
    timestamp: float
    warning_number: int


@dataclass
class VerificationChallenge:
    """Математическая captcha для нового участника.

    attempts не превышает 2, пока запись существует: третья ошибка
    удаляет запись и исключает пользователя.
    """
    chat_id: int
    user_id: int
    question: str
    options: List[str]
    correct_index: int
    attempts: int = 0
    created_at: float = 0.0
    message_id: Optional[int] = None

    @classmethod
    def create(
        cls,
        chat_id: int,
        user_id: int,
        question: str,
        options: List[str],
        correct_index: int,
        now: Optional[float] = None,
    ) -> "VerificationChallenge":
        return cls(
            chat_id=chat_id,
            user_id=user_id,
            question=question,
            options=options,
            correct_index=correct_index,
            created_at=now if now is not None else time.time(),
        )


@dataclass
class Poll:
    """Опрос с inline-кнопками, независимый от нативных опросов Telegram.

    voters хранит выбор каждого голосовавшего: {str(user_id): [индексы]}.
    Ключи строковые, потому что запись сериализуется в JSON.
    """
    id: str
    chat_id: int
    creator_id: int
    question: str
    options: List[str]
    voters: Dict[str, List[int]] = field(default_factory=dict)
    is_anonymous: bool = True
    multiple_answers: bool = False
    created_at: float = 0.0
    expires_at: Optional[float] = None
    closed: bool = False
    message_id: Optional[int] = None

    @classmethod
    def create(
        cls,
        chat_id: int,
        creator_id: int,
        question: str,
        options: List[str],
        is_anonymous: bool = True,
        multiple_answers: bool = False,
        expiry_minutes: Optional[int] = None,
        now: Optional[float] = None,
    ) -> "Poll":
        created_at = now if now is not None else time.time()
        return cls(
            id=uuid.uuid4().hex,
            chat_id=chat_id,
            creator_id=creator_id,
            question=question,
            options=options,
            is_anonymous=is_anonymous,
            multiple_answers=multiple_answers,
            created_at=created_at,
            expires_at=created_at + expiry_minutes * 60 if expiry_minutes else None,
        )

    def selection(self, user_id: int) -> List[int]:
        return self.voters.get(str(user_id), [])


@dataclass
class OptionTally:
    option: str
    votes: int


@dataclass
class PollTally:
    question: str
    results: List[OptionTally]

    @property
    def total_votes(self) -> int:
        return sum(r.votes for r in self.results)
