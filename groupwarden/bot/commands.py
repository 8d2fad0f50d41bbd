# Copyright (c) 2025 sprowii
"""Команды бота в группах.

Админские команды для остальных участников молча игнорируются.
"""
import html
from dataclasses import fields
from typing import Any, Dict, List, Optional

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup, Message

from groupwarden.llm.client import ClassificationClient
from groupwarden.logging_config import log
from groupwarden.moderation.actions import ChatActions
from groupwarden.moderation.activity import format_stats
from groupwarden.moderation.controller import DEFAULT_MUTE_MIN, ModerationController, mention
from groupwarden.moderation.models import GroupSettings
from groupwarden.moderation.permissions import is_user_admin
from groupwarden.moderation.polls import PollEngine, PollValidationError, parse_options
from groupwarden.security.data_protection import pseudonymize_chat_id
from groupwarden.utils.text import command_args, command_name, split_long_message

PROFILE_WARNING_REASONS = 3

ADMIN_COMMANDS = {
    "/warn",
    "/unwarn",
    "/ban",
    "/kick",
    "/mute",
    "/verification",
    "/setwelcome",
    "/settings",
    "/review",
}

HELP_TEXT = (
    "🤖 <b>Бот-модератор группы</b>\n\n"
    "🛡 <b>Модерация:</b> антиспам по правилам и через AI, предупреждения с автобаном, "
    "проверка новичков, фильтр медиа и пересылок.\n\n"
    "<b>Команды для всех:</b>\n"
    "/rules - правила группы\n"
    "/stats - статистика группы\n"
    "/profile - твой профиль\n"
    "/poll Вопрос | вариант 1 | вариант 2 - опрос (флаги: --multi, --public, --minutes=N)\n"
    "/translate [язык] - перевести сообщение (ответом)\n"
    "/summarize - краткий пересказ сообщения (ответом)\n"
    "/sentiment - тональность сообщения (ответом)\n\n"
    "<b>Для админов:</b>\n"
    "/warn, /unwarn, /ban, /kick, /mute [мин] - ответом на сообщение\n"
    "/verification on|off - проверка новичков\n"
    "/setwelcome текст - приветствие ({username}, {chatname})\n"
    "/settings - переключатели, /settings поле значение - изменить настройку\n"
    "/review - последние резко негативные сообщения"
)

RULES_TEXT = (
    "📋 <b>Правила группы</b>\n\n"
    "1. Уважай других участников\n"
    "2. Без спама, рекламы и самопиара\n"
    "3. Не отходи от темы\n"
    "4. Без оскорблений и травли\n"
    "5. Ссылки и пересылки - только разрешённые\n"
    "6. Медиа доступны после знакомства с группой\n\n"
    "Нарушения: ⚠️ предупреждения → 🚫 бан"
)

SETTING_TOGGLES = [
    ("welcome_enabled", "Приветствие"),
    ("anti_spam_enabled", "Антиспам"),
    ("ai_moderation_enabled", "AI-модерация"),
    ("auto_translate", "Автоперевод"),
    ("media_filtering", "Фильтр медиа"),
    ("forward_filtering", "Фильтр пересылок"),
    ("sentiment_analysis", "Тональность"),
    ("mute_new_users", "Мут новичков"),
    ("delete_service_messages", "Удалять служебные"),
]

_TRUE_WORDS = {"on", "true", "1", "yes", "да", "вкл"}
_FALSE_WORDS = {"off", "false", "0", "no", "нет", "выкл"}


def parse_switch(raw: str) -> Optional[bool]:
    value = raw.strip().lower()
    if value in _TRUE_WORDS:
        return True
    if value in _FALSE_WORDS:
        return False
    return None


def coerce_setting(name: str, raw: str) -> Any:
    """Привести строковое значение к типу поля GroupSettings.

    Raises:
        ValueError: неизвестное поле или значение не подходит
    """
    defaults: Dict[str, Any] = {f.name: getattr(GroupSettings(chat_id=0), f.name) for f in fields(GroupSettings)}
    if name not in defaults or name == "chat_id":
        raise ValueError(f"Неизвестная настройка: {name}")

    current = defaults[name]
    if isinstance(current, bool):
        switch = parse_switch(raw)
        if switch is None:
            raise ValueError("Ожидается on или off")
        return switch
    if isinstance(current, int):
        number = int(raw)
        if name == "max_warnings" and number < 1:
            raise ValueError("max_warnings должен быть положительным")
        return number
    if isinstance(current, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw.strip() or None


def settings_keyboard(settings: GroupSettings) -> InlineKeyboardMarkup:
    buttons = [
        InlineKeyboardButton(
            f"{label}: {'✅' if getattr(settings, name) else '❌'}",
            callback_data=f"settings:{name}",
        )
        for name, label in SETTING_TOGGLES
    ]
    rows = [buttons[i:i + 2] for i in range(0, len(buttons), 2)]
    return InlineKeyboardMarkup(rows)


def parse_poll_command(args: List[str]) -> Dict[str, Any]:
    """Разобрать аргументы /poll.

    Флаги идут перед вопросом: --multi, --public, --minutes=N.
    Вопрос и варианты разделяются символом "|".
    """
    multiple_answers = False
    is_anonymous = True
    expiry_minutes = None
    rest = list(args)
    while rest and rest[0].startswith("--"):
        flag = rest.pop(0).lower()
        if flag == "--multi":
            multiple_answers = True
        elif flag == "--public":
            is_anonymous = False
        elif flag.startswith("--minutes="):
            try:
                expiry_minutes = int(flag.split("=", 1)[1])
            except ValueError:
                raise PollValidationError("--minutes должен быть числом")
            if expiry_minutes <= 0:
                raise PollValidationError("--minutes должен быть положительным")
        else:
            raise PollValidationError(f"Неизвестный флаг: {flag}")

    parts = parse_options(" ".join(rest))
    return {
        "question": parts[0] if parts else "",
        "options": parts[1:],
        "is_anonymous": is_anonymous,
        "multiple_answers": multiple_answers,
        "expiry_minutes": expiry_minutes,
    }


def sentiment_emoji(sentiment: str) -> str:
    return {"positive": "😊", "negative": "😞"}.get(sentiment, "😐")


class CommandHandler:
    def __init__(
        self,
        bot: Bot,
        actions: ChatActions,
        controller: ModerationController,
        polls: PollEngine,
        classifier: ClassificationClient,
    ):
        self.bot = bot
        self.actions = actions
        self.controller = controller
        self.polls = polls
        self.classifier = classifier

    async def handle(self, message: Message) -> None:
        command = command_name(message.text)
        args = command_args(message.text)
        chat_id = message.chat_id
        user = message.from_user
        if user is None:
            return

        if command in ADMIN_COMMANDS:
            if not await is_user_admin(self.bot, chat_id, user.id):
                log.info(f"Админская команда {command} от не-админа в чате {pseudonymize_chat_id(chat_id)} проигнорирована")
                return
            await self._admin(command, message, args)
            return

        handler = {
            "/start": self.cmd_help,
            "/help": self.cmd_help,
            "/rules": self.cmd_rules,
            "/stats": self.cmd_stats,
            "/profile": self.cmd_profile,
            "/poll": self.cmd_poll,
            "/translate": self.cmd_translate,
            "/summarize": self.cmd_summarize,
            "/sentiment": self.cmd_sentiment,
        }.get(command, self.cmd_ask)
        await handler(message, args)

    async def _admin(self, command: str, message: Message, args: List[str]) -> None:
        handler = {
            "/warn": self.cmd_warn,
            "/unwarn": self.cmd_unwarn,
            "/ban": self.cmd_ban,
            "/kick": self.cmd_kick,
            "/mute": self.cmd_mute,
            "/verification": self.cmd_verification,
            "/setwelcome": self.cmd_setwelcome,
            "/settings": self.cmd_settings,
            "/review": self.cmd_review,
        }[command]
        await handler(message, args)

    # ========================================================================
    # ДЛЯ ВСЕХ
    # ========================================================================

    async def cmd_help(self, message: Message, args: List[str]) -> None:
        await self.actions.send(message.chat_id, HELP_TEXT)

    async def cmd_rules(self, message: Message, args: List[str]) -> None:
        await self.actions.send(message.chat_id, RULES_TEXT)

    async def cmd_stats(self, message: Message, args: List[str]) -> None:
        stats = await self.controller.activity.stats_async(message.chat_id)
        await self.actions.send(message.chat_id, format_stats(stats))

    async def cmd_profile(self, message: Message, args: List[str]) -> None:
        chat_id = message.chat_id
        user = message.from_user
        warnings = await self.controller.ledger.get_count_async(chat_id, user.id)
        level = await self.controller.activity.user_trust_level_async(chat_id, user.id, warnings)
        text = (
            f"👤 <b>{mention(user)}</b>\n\n"
            f"⚠️ Предупреждений: {warnings}\n"
            f"🏅 Уровень доверия: {level}"
        )
        recent = (await self.controller.ledger.get_log_async(chat_id, user.id))[:PROFILE_WARNING_REASONS]
        if recent:
            reasons = "\n".join(f"• {html.escape(entry.reason)}" for entry in recent)
            text += f"\n\n📋 Последние предупреждения:\n{reasons}"
        await self.actions.send(chat_id, text)

    async def cmd_poll(self, message: Message, args: List[str]) -> None:
        chat_id = message.chat_id
        try:
            params = parse_poll_command(args)
            poll = self.polls.create(chat_id=chat_id, creator_id=message.from_user.id, **params)
        except PollValidationError as exc:
            await self.actions.send(
                chat_id,
                f"❌ {html.escape(str(exc))}\n\nПример: /poll Куда идём? | Кино | Парк | Домой",
            )
            return
        await self.polls.publish(poll)

    async def cmd_translate(self, message: Message, args: List[str]) -> None:
        target = message.reply_to_message
        if target is None or not target.text:
            await self.actions.send(message.chat_id, "🌐 Ответь командой на сообщение, которое нужно перевести.")
            return
        language = args[0] if args else "en"
        result = await self.classifier.translate(target.text, language)
        await self.actions.send(
            message.chat_id,
            f"🌐 <b>Перевод ({html.escape(language.upper())}):</b>\n\n{html.escape(result.value)}",
            reply_to_message_id=target.message_id,
        )

    async def cmd_summarize(self, message: Message, args: List[str]) -> None:
        target = message.reply_to_message
        if target is None or not target.text:
            await self.actions.send(message.chat_id, "📝 Ответь командой на сообщение для пересказа.")
            return
        result = await self.classifier.summarize(target.text)
        for chunk in split_long_message(f"📝 <b>Кратко:</b>\n\n{html.escape(result.value)}"):
            await self.actions.send(message.chat_id, chunk, reply_to_message_id=target.message_id)

    async def cmd_sentiment(self, message: Message, args: List[str]) -> None:
        target = message.reply_to_message
        if target is None or not target.text:
            await self.actions.send(message.chat_id, "😊 Ответь командой на сообщение для анализа тональности.")
            return
        verdict = (await self.classifier.classify_sentiment(target.text)).value
        bar = "█" * abs(round(verdict.score * 10))
        emotions = ", ".join(verdict.emotions) or "-"
        await self.actions.send(
            message.chat_id,
            f"{sentiment_emoji(verdict.sentiment)} <b>Тональность:</b> {html.escape(verdict.sentiment)}\n"
            f"<b>Оценка:</b> {verdict.score:.2f}\n"
            f"<b>Интенсивность:</b> {bar}\n"
            f"<b>Эмоции:</b> {html.escape(emotions)}",
            reply_to_message_id=target.message_id,
        )

    async def cmd_ask(self, message: Message, args: List[str]) -> None:
        """Неизвестная команда - отвечаем через модель."""
        context = f'Group management bot in Telegram group "{message.chat.title or ""}"'
        result = await self.classifier.respond(context, message.text or "")
        await self.actions.send(
            message.chat_id,
            f"🤖 {html.escape(result.value)}",
            reply_to_message_id=message.message_id,
        )

    # ========================================================================
    # АДМИНСКИЕ
    # ========================================================================

    async def _reply_target(self, message: Message, action: str):
        target = message.reply_to_message
        if target is None or target.from_user is None:
            await self.actions.send(message.chat_id, f"Ответь на сообщение пользователя, чтобы {action}.")
            return None
        return target.from_user

    async def cmd_warn(self, message: Message, args: List[str]) -> None:
        user = await self._reply_target(message, "выдать предупреждение")
        if user is None:
            return
        reason = " ".join(args) or "Причина не указана"
        await self.controller.warn(message.chat_id, user, reason)

    async def cmd_unwarn(self, message: Message, args: List[str]) -> None:
        user = await self._reply_target(message, "сбросить предупреждения")
        if user is None:
            return
        await self.controller.clear_warnings(message.chat_id, user)

    async def cmd_ban(self, message: Message, args: List[str]) -> None:
        user = await self._reply_target(message, "забанить")
        if user is None:
            return
        await self.controller.ban_user(message.chat_id, user, " ".join(args) or "Причина не указана")

    async def cmd_kick(self, message: Message, args: List[str]) -> None:
        user = await self._reply_target(message, "исключить")
        if user is None:
            return
        await self.controller.kick_user(message.chat_id, user, " ".join(args) or "Причина не указана")

    async def cmd_mute(self, message: Message, args: List[str]) -> None:
        user = await self._reply_target(message, "замутить")
        if user is None:
            return
        try:
            minutes = int(args[0]) if args else DEFAULT_MUTE_MIN
        except ValueError:
            minutes = DEFAULT_MUTE_MIN
        if minutes <= 0:
            minutes = DEFAULT_MUTE_MIN
        await self.controller.mute_user(message.chat_id, user, minutes)

    async def cmd_verification(self, message: Message, args: List[str]) -> None:
        chat_id = message.chat_id
        settings_store = self.controller.settings
        switch = parse_switch(args[0]) if args else None
        if switch is None:
            current = await settings_store.get_verification_async(chat_id)
            status = "включена" if current.enabled else "выключена"
            await self.actions.send(chat_id, f"🔐 Проверка новичков {status}.\nИспользование: /verification on|off")
            return
        await settings_store.update_verification_async(chat_id, enabled=switch)
        await self.actions.send(chat_id, f"🔐 Проверка новичков {'включена' if switch else 'выключена'}.")

    async def cmd_setwelcome(self, message: Message, args: List[str]) -> None:
        text = (message.text or "").split(maxsplit=1)
        if len(text) < 2 or not text[1].strip():
            await self.actions.send(
                message.chat_id,
                "Укажи текст приветствия.\nПример: /setwelcome Привет, {username}! Добро пожаловать в {chatname}",
            )
            return
        await self.controller.settings.update_async(message.chat_id, welcome_message=text[1].strip())
        await self.actions.send(message.chat_id, "✅ Приветствие обновлено.")

    async def cmd_settings(self, message: Message, args: List[str]) -> None:
        chat_id = message.chat_id
        if len(args) >= 2:
            name, raw = args[0].lower(), " ".join(args[1:])
            try:
                value = coerce_setting(name, raw)
                await self.controller.settings.update_async(chat_id, **{name: value})
            except ValueError as exc:
                await self.actions.send(chat_id, f"❌ {html.escape(str(exc))}")
                return
            await self.actions.send(chat_id, f"✅ {html.escape(name)} обновлено.")
            return

        settings = await self.controller.settings.get_async(chat_id)
        await self.actions.send(
            chat_id,
            "⚙️ <b>Настройки группы</b>\n\n"
            f"Лимит предупреждений: {settings.max_warnings}\n"
            f"Язык перевода: {html.escape(settings.target_language)}\n"
            f"Запрещённые слова: {html.escape(', '.join(settings.banned_words)) or '-'}\n"
            f"Разрешённые ссылки: {html.escape(', '.join(settings.allowed_links)) or '-'}",
            reply_markup=settings_keyboard(settings),
        )

    async def cmd_review(self, message: Message, args: List[str]) -> None:
        entries = await self.controller.review.recent_async(message.chat_id)
        if not entries:
            await self.actions.send(message.chat_id, "✅ Негативных сообщений для проверки нет.")
            return
        lines = ["🔎 <b>На проверку:</b>"]
        for entry in entries:
            lines.append(f"\n• {entry.score:.2f}: {html.escape(entry.text[:200])}")
        for chunk in split_long_message("\n".join(lines)):
            await self.actions.send(message.chat_id, chunk)

    async def toggle_setting(self, chat_id: int, name: str) -> Optional[GroupSettings]:
        """Переключить булеву настройку с inline-кнопки."""
        if name not in dict(SETTING_TOGGLES):
            return None
        current = await self.controller.settings.get_async(chat_id)
        return await self.controller.settings.update_async(chat_id, **{name: not getattr(current, name)})
