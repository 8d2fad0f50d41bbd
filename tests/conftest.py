# Copyright (c) 2025 sprowii
"""
Общие фикстуры: in-memory хранилище, управляемые часы, мок бота и
сборщики объектов Telegram.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram import CallbackQuery, Chat, ChatMember, Message, User

from groupwarden.llm.client import (
    Classified,
    SentimentVerdict,
    SpamVerdict,
    TRANSLATION_FAILED,
)
from groupwarden.moderation.actions import ChatActions
from groupwarden.storage.memory import MemoryKeyValueStore

CHAT_ID = -1001234567890
START_TIME = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeClassifier:
    """Классификатор с заранее заданными ответами."""

    def __init__(self):
        self.spam = Classified(SpamVerdict())
        self.sentiment = Classified(SentimentVerdict())
        self.translation = Classified("", available=False, error="unset")
        self.calls = []

    async def classify_spam(self, text):
        self.calls.append("spam")
        return self.spam

    async def classify_sentiment(self, text):
        self.calls.append("sentiment")
        return self.sentiment

    async def translate(self, text, target_language):
        self.calls.append("translate")
        return self.translation

    async def summarize(self, text, max_length=100):
        self.calls.append("summarize")
        return Classified("short")

    async def respond(self, context, message):
        self.calls.append("respond")
        return Classified("hello")

    def fail_translation(self):
        self.translation = Classified(TRANSLATION_FAILED, available=False, error="boom")


def make_user(user_id: int = 42, first_name: str = "Alice", username=None, is_bot: bool = False) -> User:
    return User(id=user_id, first_name=first_name, is_bot=is_bot, username=username)


def make_chat(chat_id: int = CHAT_ID, chat_type: str = Chat.SUPERGROUP, title: str = "Test Group") -> Chat:
    return Chat(id=chat_id, type=chat_type, title=title)


def make_message(
    text=None,
    user=None,
    chat=None,
    message_id: int = 100,
    **kwargs,
) -> Message:
    return Message(
        message_id=message_id,
        date=datetime.now(timezone.utc),
        chat=chat or make_chat(),
        from_user=user if user is not None else make_user(),
        text=text,
        **kwargs,
    )


def make_callback(data: str, user=None, message=None, query_id: str = "cb-1") -> CallbackQuery:
    return CallbackQuery(
        id=query_id,
        from_user=user or make_user(),
        chat_instance="instance",
        data=data,
        message=message,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryKeyValueStore(clock=clock)


@pytest.fixture
def bot():
    mock_bot = AsyncMock()
    mock_bot.send_message.return_value = MagicMock(message_id=555)
    mock_bot.get_chat_member.return_value = MagicMock(status=ChatMember.MEMBER)
    return mock_bot


@pytest.fixture
def admin_bot(bot):
    bot.get_chat_member.return_value = MagicMock(status=ChatMember.ADMINISTRATOR)
    return bot


@pytest.fixture
def actions(bot):
    return ChatActions(bot)


@pytest.fixture
def classifier():
    return FakeClassifier()


def sent_texts(bot) -> list:
    return [c.kwargs["text"] for c in bot.send_message.call_args_list]
