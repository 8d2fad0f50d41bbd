# Copyright (c) 2025 sprowii
"""Проверка новых участников математической captcha.

Жизненный цикл для пары (группа, пользователь):

    NONE -> CHALLENGED -> VERIFIED | EXPELLED

CHALLENGED повторяется при неверном ответе, пока попыток меньше трёх.
Запись verification:{chat_id}:{user_id} существует только в состоянии
CHALLENGED и живёт 5 минут. Истёкшая запись просто исчезает: ограничения
с пользователя не снимаются, повторной проверки нет.
"""
import json
import random
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, User

from groupwarden.logging_config import log
from groupwarden.moderation.actions import ChatActions
from groupwarden.moderation.models import VerificationChallenge
from groupwarden.security.data_protection import pseudonymize_chat_id, pseudonymize_id
from groupwarden.storage.kv import KeyValueStore, run_blocking

VERIFICATION_PREFIX = "verification:"
CHALLENGE_TTL_SEC = 300
MAX_ATTEMPTS = 3
WRONG_OPTIONS = 3

OPERATIONS = ("+", "-", "×")


class VerificationState(str, Enum):
    NONE = "none"
    CHALLENGED = "challenged"
    VERIFIED = "verified"
    EXPELLED = "expelled"


@dataclass
class Grade:
    """Результат проверки ответа.

    challenge заполнен только для CHALLENGED: у терминальных состояний
    записи нет.
    """
    state: VerificationState
    challenge: Optional[VerificationChallenge] = None

    @property
    def attempts_left(self) -> int:
        if self.challenge is None:
            return 0
        return MAX_ATTEMPTS - self.challenge.attempts


# ============================================================================
# ГЕНЕРАЦИЯ
# ============================================================================

def generate_math_challenge(rng: Optional[random.Random] = None) -> Tuple[str, List[str], int]:
    """Сгенерировать пример и 4 варианта ответа.

    Returns:
        (вопрос, варианты после перемешивания, индекс правильного варианта)
    """
    rng = rng or random.Random()
    operation = rng.choice(OPERATIONS)

    if operation == "+":
        a, b = rng.randint(1, 20), rng.randint(1, 20)
        answer = a + b
    elif operation == "-":
        a, b = rng.randint(10, 29), rng.randint(1, 10)
        answer = a - b
    else:
        a, b = rng.randint(1, 10), rng.randint(1, 10)
        answer = a * b

    wrong: List[int] = []
    while len(wrong) < WRONG_OPTIONS:
        candidate = answer + rng.randint(-5, 4)
        if candidate > 0 and candidate != answer and candidate not in wrong:
            wrong.append(candidate)

    options = [answer] + wrong
    rng.shuffle(options)
    return f"{a} {operation} {b} = ?", [str(o) for o in options], options.index(answer)


def grade_attempt(challenge: VerificationChallenge, index: int) -> Grade:
    """Чистый переход состояния по выбранному варианту.

    Исходная запись не меняется; для CHALLENGED возвращается копия
    с увеличенным счётчиком попыток.
    """
    attempts = challenge.attempts + 1
    if index == challenge.correct_index:
        return Grade(VerificationState.VERIFIED)
    if attempts >= MAX_ATTEMPTS:
        return Grade(VerificationState.EXPELLED)
    updated = VerificationChallenge(**{**asdict(challenge), "attempts": attempts})
    return Grade(VerificationState.CHALLENGED, updated)


def build_keyboard(challenge: VerificationChallenge) -> InlineKeyboardMarkup:
    buttons = [
        InlineKeyboardButton(
            text=option,
            callback_data=f"verify:{challenge.chat_id}:{challenge.user_id}:{i}",
        )
        for i, option in enumerate(challenge.options)
    ]
    return InlineKeyboardMarkup([buttons[:2], buttons[2:]])


def parse_callback(data: str) -> Optional[Tuple[int, int, int]]:
    """Разобрать verify:{chat_id}:{user_id}:{index}."""
    parts = data.split(":")
    if len(parts) != 4 or parts[0] != "verify":
        return None
    try:
        return int(parts[1]), int(parts[2]), int(parts[3])
    except ValueError:
        return None


# ============================================================================
# ДВИЖОК
# ============================================================================

def _challenge_key(chat_id: int, user_id: int) -> str:
    return f"{VERIFICATION_PREFIX}{chat_id}:{user_id}"


class VerificationEngine:
    """Выдача и проверка captcha с побочными эффектами в чате.

    Чтение-изменение-запись записи не атомарно: два одновременных нажатия
    могут увидеть одну и ту же версию, и одно обновление потеряется.
    """

    def __init__(
        self,
        store: KeyValueStore,
        actions: ChatActions,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.actions = actions
        self.clock = clock
        self.rng = rng or random.Random()

    # -- хранилище --------------------------------------------------------

    def load(self, chat_id: int, user_id: int) -> Optional[VerificationChallenge]:
        raw = self.store.get(_challenge_key(chat_id, user_id))
        if not raw:
            return None
        try:
            return VerificationChallenge(**json.loads(raw))
        except (json.JSONDecodeError, TypeError) as exc:
            log.warning(f"Повреждённая запись проверки: {exc}")
            return None

    def save(self, challenge: VerificationChallenge) -> None:
        self.store.set(
            _challenge_key(challenge.chat_id, challenge.user_id),
            json.dumps(asdict(challenge), ensure_ascii=False),
            ttl=CHALLENGE_TTL_SEC,
        )

    def remove(self, chat_id: int, user_id: int) -> None:
        self.store.delete(_challenge_key(chat_id, user_id))

    def state(self, chat_id: int, user_id: int) -> VerificationState:
        """Текущее состояние. Терминальные состояния не хранятся и видны как NONE."""
        if self.store.exists(_challenge_key(chat_id, user_id)):
            return VerificationState.CHALLENGED
        return VerificationState.NONE

    # -- сценарии ---------------------------------------------------------

    async def start(self, chat_id: int, user: User) -> Optional[VerificationChallenge]:
        """Ограничить нового участника и отправить ему captcha.

        Returns:
            Сохранённая запись или None для ботов
        """
        if user.is_bot:
            return None

        await self.actions.restrict(chat_id, user.id)

        question, options, correct_index = generate_math_challenge(self.rng)
        challenge = VerificationChallenge.create(
            chat_id=chat_id,
            user_id=user.id,
            question=question,
            options=options,
            correct_index=correct_index,
            now=self.clock(),
        )

        name = user.first_name or user.username or "Пользователь"
        message = await self.actions.send(
            chat_id,
            f"👋 Привет, <b>{name}</b>!\n\n"
            f"🔐 Чтобы писать в группе, реши пример:\n\n<b>{question}</b>\n\n"
            f"⏱ На ответ 5 минут, попыток: {MAX_ATTEMPTS}.",
            reply_markup=build_keyboard(challenge),
        )
        if message is not None:
            challenge.message_id = message.message_id

        await run_blocking(self.save, challenge)
        log.info(f"Captcha выдана {pseudonymize_id(user.id)} в чате {pseudonymize_chat_id(chat_id)}")
        return challenge

    async def answer(self, chat_id: int, user_id: int, index: int) -> Optional[Grade]:
        """Обработать выбранный вариант.

        Returns:
            Grade с новым состоянием, или None если запись не найдена/истекла
        """
        challenge = await run_blocking(self.load, chat_id, user_id)
        if challenge is None:
            return None

        grade = grade_attempt(challenge, index)

        if grade.state == VerificationState.VERIFIED:
            await self.actions.unrestrict(chat_id, user_id)
            await self.actions.delete(chat_id, challenge.message_id)
            await run_blocking(self.remove, chat_id, user_id)
            await self.actions.send(chat_id, "✅ Проверка пройдена, добро пожаловать!")
            log.info(f"Пользователь {pseudonymize_id(user_id)} прошёл captcha в чате {pseudonymize_chat_id(chat_id)}")
        elif grade.state == VerificationState.EXPELLED:
            await self.actions.kick(chat_id, user_id)
            await self.actions.delete(chat_id, challenge.message_id)
            await run_blocking(self.remove, chat_id, user_id)
            log.info(f"Пользователь {pseudonymize_id(user_id)} провалил captcha в чате {pseudonymize_chat_id(chat_id)}")
        else:
            await run_blocking(self.save, grade.challenge)

        return grade
