# Copyright (c) 2025 sprowii
"""Маршрутизация входящих обновлений.

Каждое обновление попадает ровно в один обработчик: проверку новичков,
конвейер модерации, команды или опросы.
"""
import time
from typing import Callable, Optional

from telegram import Bot, CallbackQuery, Message, Update
from telegram.constants import ChatType

from groupwarden.bot.commands import HELP_TEXT, CommandHandler, settings_keyboard
from groupwarden.llm.client import ClassificationClient
from groupwarden.logging_config import log
from groupwarden.moderation.actions import ChatActions
from groupwarden.moderation.captcha import VerificationState, parse_callback
from groupwarden.moderation.controller import ModerationController
from groupwarden.moderation.permissions import is_user_admin
from groupwarden.moderation.polls import PollEngine, format_results
from groupwarden.moderation.welcome import parse_unmute_callback
from groupwarden.security.data_protection import pseudonymize_chat_id
from groupwarden.storage.kv import KeyValueStore, run_blocking

GROUP_TYPES = (ChatType.GROUP, ChatType.SUPERGROUP)


class UpdateDispatcher:
    """Собирает компоненты для одного обновления и вызывает нужный."""

    def __init__(
        self,
        bot: Bot,
        store: KeyValueStore,
        classifier: Optional[ClassificationClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.bot = bot
        self.actions = ChatActions(bot)
        self.classifier = classifier or ClassificationClient()
        self.controller = ModerationController(self.actions, store, self.classifier, clock)
        self.verification = self.controller.verification
        self.polls = PollEngine(store, self.actions, clock)
        self.commands = CommandHandler(bot, self.actions, self.controller, self.polls, self.classifier)

    async def dispatch(self, update: Update) -> None:
        if update.callback_query is not None:
            await self.on_callback(update.callback_query)
        elif update.poll_answer is not None:
            answer = update.poll_answer
            if answer.user is not None:
                await run_blocking(self.polls.record_poll_answer, answer.poll_id, answer.user.id, list(answer.option_ids))
        elif update.message is not None:
            await self.on_message(update.message)

    # ========================================================================
    # СООБЩЕНИЯ
    # ========================================================================

    async def on_message(self, message: Message) -> None:
        if message.chat.type not in GROUP_TYPES:
            if message.text and message.text.startswith(("/start", "/help")):
                await self.actions.send(message.chat_id, HELP_TEXT)
            return

        if message.new_chat_members:
            await self.on_new_members(message)
        elif message.left_chat_member is not None:
            await self.controller.on_left_member(message)
        elif message.poll is not None:
            poll = message.poll
            await run_blocking(
                self.polls.record_native_poll,
                poll.id,
                poll.question,
                [option.text for option in poll.options],
                poll.total_voter_count,
                poll.is_closed,
            )
        elif message.text and message.text.startswith("/"):
            await self.commands.handle(message)
        else:
            await self.controller.on_message(message)

    async def on_new_members(self, message: Message) -> None:
        await self.controller.on_new_members(message)
        verification = await self.controller.settings.get_verification_async(message.chat_id)
        if not verification.enabled:
            return
        for user in message.new_chat_members:
            if not user.is_bot:
                await self.verification.start(message.chat_id, user)

    # ========================================================================
    # CALLBACK-КНОПКИ
    # ========================================================================

    async def on_callback(self, query: CallbackQuery) -> None:
        data = query.data or ""
        prefix = data.split(":", 1)[0]
        handler = {
            "verify": self.on_verify,
            "vote": self.on_vote,
            "results": self.on_results,
            "close": self.on_close,
            "unmute": self.on_unmute,
            "settings": self.on_settings,
        }.get(prefix)
        if handler is None:
            await self.actions.answer_callback(query.id)
            return
        await handler(query, data)

    async def on_verify(self, query: CallbackQuery, data: str) -> None:
        parsed = parse_callback(data)
        if parsed is None:
            await self.actions.answer_callback(query.id)
            return
        chat_id, user_id, index = parsed
        if query.from_user.id != user_id:
            await self.actions.answer_callback(query.id, "Эта проверка не для тебя.")
            return

        grade = await self.verification.answer(chat_id, user_id, index)
        if grade is None:
            text = "⌛ Проверка не найдена или истекла."
        elif grade.state == VerificationState.VERIFIED:
            text = "✅ Верно!"
        elif grade.state == VerificationState.EXPELLED:
            text = "❌ Попытки закончились."
        else:
            text = f"❌ Неверно. Осталось попыток: {grade.attempts_left}"
        await self.actions.answer_callback(query.id, text)

    async def on_vote(self, query: CallbackQuery, data: str) -> None:
        parts = data.split(":")
        if len(parts) != 3 or not parts[2].isdigit():
            await self.actions.answer_callback(query.id)
            return
        poll_id, index = parts[1], int(parts[2])
        if await self.polls.vote_async(poll_id, query.from_user.id, index):
            await self.actions.answer_callback(query.id, "✅ Голос учтён")
            await self.polls.refresh_message(poll_id)
        else:
            await self.actions.answer_callback(query.id, "❌ Опрос не найден, истёк или закрыт")

    async def on_results(self, query: CallbackQuery, data: str) -> None:
        poll_id = data.split(":", 1)[1]
        tally = await self.polls.tally_async(poll_id)
        await self.actions.answer_callback(query.id)
        if query.message is not None:
            await self.actions.send(query.message.chat.id, format_results(tally))

    async def on_close(self, query: CallbackQuery, data: str) -> None:
        poll_id = data.split(":", 1)[1]
        is_admin = False
        if query.message is not None:
            is_admin = await is_user_admin(self.bot, query.message.chat.id, query.from_user.id)
        if await self.polls.close_async(poll_id, query.from_user.id, is_admin):
            await self.actions.answer_callback(query.id, "🔒 Опрос закрыт")
            await self.polls.refresh_message(poll_id)
        else:
            await self.actions.answer_callback(query.id, "Закрыть опрос может только автор или админ.")

    async def on_unmute(self, query: CallbackQuery, data: str) -> None:
        parsed = parse_unmute_callback(data)
        if parsed is None:
            await self.actions.answer_callback(query.id)
            return
        chat_id, user_id = parsed
        if query.from_user.id != user_id:
            await self.actions.answer_callback(query.id, "Эта кнопка не для тебя.")
            return
        if await self.controller.on_unmute_request(chat_id, user_id, query.from_user.id):
            await self.actions.answer_callback(query.id, "🔓 Ограничение снято, добро пожаловать!")
            if query.message is not None:
                await self.actions.delete(chat_id, query.message.message_id)
        else:
            await self.actions.answer_callback(query.id, "🔐 Ограничение не снято. Если пришла проверка, сначала пройди её.")

    async def on_settings(self, query: CallbackQuery, data: str) -> None:
        if query.message is None:
            await self.actions.answer_callback(query.id)
            return
        chat_id = query.message.chat.id
        # Не-админам просто закрываем "часики" на кнопке
        if not await is_user_admin(self.bot, chat_id, query.from_user.id):
            await self.actions.answer_callback(query.id)
            return
        settings = await self.commands.toggle_setting(chat_id, data.split(":", 1)[1])
        if settings is None:
            await self.actions.answer_callback(query.id)
            return
        await self.actions.answer_callback(query.id, "Настройка обновлена")
        try:
            await query.message.edit_reply_markup(reply_markup=settings_keyboard(settings))
        except Exception as exc:
            log.warning(f"Не удалось обновить клавиатуру настроек в чате {pseudonymize_chat_id(chat_id)}: {exc}")
