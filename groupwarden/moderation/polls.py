# Copyright (c) 2025 sprowii
"""Опросы с inline-кнопками.

Ключи:
- poll:{poll_id} - запись опроса, TTL = срок опроса или 24 часа
- poll_answer:{poll_id}:{user_id} - ответы в нативных опросах Telegram
- poll_data:{poll_id} - снимок нативного опроса

Callback data: vote:{poll_id}:{index}, results:{poll_id}, close:{poll_id}.
"""
import json
import math
import time
from dataclasses import asdict
from typing import Callable, List, Optional, Sequence

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from groupwarden.logging_config import log
from groupwarden.moderation.actions import ChatActions
from groupwarden.moderation.models import OptionTally, Poll, PollTally
from groupwarden.security.data_protection import pseudonymize_chat_id, pseudonymize_id
from groupwarden.storage.kv import KeyValueStore, run_blocking

POLL_PREFIX = "poll:"
DEFAULT_POLL_TTL_SEC = 24 * 60 * 60
POLL_ANSWER_TTL_SEC = 24 * 60 * 60
MIN_OPTIONS = 2
MAX_OPTIONS = 10


class PollValidationError(ValueError):
    """Некорректные параметры опроса. Ничего не сохранено."""


def validate_poll(question: str, options: Sequence[str]) -> None:
    if not question or not question.strip():
        raise PollValidationError("Вопрос опроса не может быть пустым")
    if len(options) < MIN_OPTIONS:
        raise PollValidationError(f"Нужно минимум {MIN_OPTIONS} варианта ответа")
    if len(options) > MAX_OPTIONS:
        raise PollValidationError(f"Максимум {MAX_OPTIONS} вариантов ответа")
    if any(not option.strip() for option in options):
        raise PollValidationError("Вариант ответа не может быть пустым")


def apply_vote(poll: Poll, user_id: int, index: int) -> None:
    """Применить голос к записи.

    Без multiple_answers новый голос заменяет прежний выбор, иначе
    повторный голос за тот же вариант снимает его.
    """
    voter = str(user_id)
    if not poll.multiple_answers:
        poll.voters[voter] = [index]
        return
    current = poll.voters.get(voter, [])
    if index in current:
        poll.voters[voter] = [i for i in current if i != index]
    else:
        poll.voters[voter] = current + [index]


def tally_poll(poll: Poll) -> PollTally:
    results = [
        OptionTally(option=option, votes=sum(1 for votes in poll.voters.values() if index in votes))
        for index, option in enumerate(poll.options)
    ]
    return PollTally(question=poll.question, results=results)


def percentage(votes: int, total: int) -> int:
    """Доля в процентах с округлением половины вверх, 0 при total == 0."""
    if total <= 0:
        return 0
    return int(math.floor(votes / total * 100 + 0.5))


def format_results(tally: Optional[PollTally]) -> str:
    if tally is None:
        return "Опрос не найден или истёк."

    total = tally.total_votes
    lines = [f"📊 <b>Результаты опроса</b>\n\n<b>{tally.question}</b>\n"]
    for index, result in enumerate(tally.results, 1):
        pct = percentage(result.votes, total)
        bar = "█" * (pct // 5)
        lines.append(f"{index}. {result.option}\n{bar} {result.votes} голосов ({pct}%)\n")
    lines.append(f"👥 Всего голосов: {total}")
    return "\n".join(lines)


def format_poll_message(poll: Poll) -> str:
    expiry = ""
    if poll.expires_at:
        expiry = f"\n⏰ До: {time.strftime('%d.%m.%Y %H:%M', time.gmtime(poll.expires_at))} UTC"
    closed = "\n🔒 Опрос закрыт" if poll.closed else ""
    return (
        f"📊 <b>Опрос</b>\n\n<b>{poll.question}</b>\n\n"
        f"👥 Проголосовало: {len([v for v in poll.voters.values() if v])}{expiry}{closed}"
    )


def build_keyboard(poll: Poll) -> InlineKeyboardMarkup:
    rows = [
        [InlineKeyboardButton(f"{index + 1}. {option}", callback_data=f"vote:{poll.id}:{index}")]
        for index, option in enumerate(poll.options)
    ]
    rows.append([
        InlineKeyboardButton("📊 Результаты", callback_data=f"results:{poll.id}"),
        InlineKeyboardButton("🔒 Закрыть", callback_data=f"close:{poll.id}"),
    ])
    return InlineKeyboardMarkup(rows)


def parse_options(raw: str) -> List[str]:
    """Разобрать "вопрос | вариант 1 | вариант 2" из аргументов /poll."""
    return [part.strip() for part in raw.split("|")]


class PollEngine:
    """Создание, голосование, подсчёт и закрытие опросов.

    Голосование - чтение-изменение-запись без блокировок: одновременные
    голоса за один опрос могут потерять одно из обновлений.
    """

    def __init__(
        self,
        store: KeyValueStore,
        actions: Optional[ChatActions] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.actions = actions
        self.clock = clock

    # -- хранилище --------------------------------------------------------

    def load(self, poll_id: str) -> Optional[Poll]:
        raw = self.store.get(f"{POLL_PREFIX}{poll_id}")
        if not raw:
            return None
        try:
            return Poll(**json.loads(raw))
        except (json.JSONDecodeError, TypeError) as exc:
            log.warning(f"Повреждённая запись опроса {poll_id}: {exc}")
            return None

    def _save(self, poll: Poll) -> None:
        # Срок жизни отсчитывается от создания и не продлевается голосами
        deadline = poll.expires_at or poll.created_at + DEFAULT_POLL_TTL_SEC
        ttl = max(1, int(math.ceil(deadline - self.clock())))
        self.store.set(f"{POLL_PREFIX}{poll.id}", json.dumps(asdict(poll), ensure_ascii=False), ttl=ttl)

    # -- операции ---------------------------------------------------------

    def create(
        self,
        chat_id: int,
        creator_id: int,
        question: str,
        options: List[str],
        is_anonymous: bool = True,
        multiple_answers: bool = False,
        expiry_minutes: Optional[int] = None,
    ) -> Poll:
        """Создать и сохранить опрос.

        Raises:
            PollValidationError: пустой вопрос или вариантов не 2..10
        """
        validate_poll(question, options)
        poll = Poll.create(
            chat_id=chat_id,
            creator_id=creator_id,
            question=question.strip(),
            options=[o.strip() for o in options],
            is_anonymous=is_anonymous,
            multiple_answers=multiple_answers,
            expiry_minutes=expiry_minutes,
            now=self.clock(),
        )
        ttl = expiry_minutes * 60 if expiry_minutes else DEFAULT_POLL_TTL_SEC
        self.store.set(f"{POLL_PREFIX}{poll.id}", json.dumps(asdict(poll), ensure_ascii=False), ttl=ttl)
        log.info(f"Опрос {poll.id} создан в чате {pseudonymize_chat_id(chat_id)}")
        return poll

    def vote(self, poll_id: str, user_id: int, index: int) -> bool:
        """Проголосовать.

        Returns:
            False без изменений, если опрос не найден, истёк, закрыт
            или индекс вне диапазона
        """
        poll = self.load(poll_id)
        if poll is None:
            return False
        if poll.expires_at and self.clock() > poll.expires_at:
            return False
        if poll.closed or not 0 <= index < len(poll.options):
            return False

        apply_vote(poll, user_id, index)
        self._save(poll)
        return True

    def tally(self, poll_id: str) -> Optional[PollTally]:
        poll = self.load(poll_id)
        if poll is None:
            return None
        return tally_poll(poll)

    def close(self, poll_id: str, user_id: int, is_admin: bool = False) -> bool:
        """Закрыть опрос. Доступно создателю и админам группы."""
        poll = self.load(poll_id)
        if poll is None:
            return False
        if poll.creator_id != user_id and not is_admin:
            return False
        poll.closed = True
        self._save(poll)
        log.info(f"Опрос {poll_id} закрыт пользователем {pseudonymize_id(user_id)}")
        return True

    def record_poll_answer(self, poll_id: str, user_id: int, option_ids: List[int]) -> None:
        """Сохранить ответ в нативном опросе Telegram для аналитики."""
        payload = {"user_id": user_id, "option_ids": option_ids, "timestamp": self.clock()}
        self.store.set(f"poll_answer:{poll_id}:{user_id}", json.dumps(payload), ttl=POLL_ANSWER_TTL_SEC)

    def record_native_poll(self, poll_id: str, question: str, options: List[str], total_voters: int, is_closed: bool) -> None:
        payload = {
            "question": question,
            "options": options,
            "total_voters": total_voters,
            "is_closed": is_closed,
            "timestamp": self.clock(),
        }
        self.store.set(f"poll_data:{poll_id}", json.dumps(payload, ensure_ascii=False), ttl=DEFAULT_POLL_TTL_SEC)

    # -- async ------------------------------------------------------------

    async def publish(self, poll: Poll) -> Poll:
        """Отправить опрос в группу с клавиатурой для голосования."""
        if self.actions is not None:
            message = await self.actions.send(poll.chat_id, format_poll_message(poll), reply_markup=build_keyboard(poll))
            if message is not None:
                poll.message_id = message.message_id
                await run_blocking(self._save, poll)
        return poll

    async def refresh_message(self, poll_id: str) -> None:
        poll = await run_blocking(self.load, poll_id)
        if poll is None or self.actions is None or not poll.message_id:
            return
        markup = None if poll.closed else build_keyboard(poll)
        await self.actions.edit(poll.chat_id, poll.message_id, format_poll_message(poll), reply_markup=markup)

    async def vote_async(self, poll_id: str, user_id: int, index: int) -> bool:
        return await run_blocking(self.vote, poll_id, user_id, index)

    async def tally_async(self, poll_id: str) -> Optional[PollTally]:
        return await run_blocking(self.tally, poll_id)

    async def close_async(self, poll_id: str, user_id: int, is_admin: bool = False) -> bool:
        return await run_blocking(self.close, poll_id, user_id, is_admin)
