# Copyright (c) 2025 sprowii
import html
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from telegram import Message, User

from groupwarden.llm.client import ClassificationClient
from groupwarden.logging_config import log
from groupwarden.moderation.actions import ChatActions
from groupwarden.moderation.activity import FORWARD_TRUST_LEVEL, MEDIA_TRUST_LEVEL, ActivityTracker
from groupwarden.moderation.captcha import VerificationEngine, VerificationState
from groupwarden.moderation.models import GroupSettings
from groupwarden.moderation.review import ReviewLog
from groupwarden.moderation.settings import SettingsStore
from groupwarden.moderation.spam import SpamFilter
from groupwarden.moderation.warns import WarnEscalation, WarningLedger, evaluate, format_warning_notice
from groupwarden.moderation.welcome import format_welcome, unmute_keyboard
from groupwarden.security.data_protection import safe_log_action
from groupwarden.storage.kv import KeyValueStore, run_blocking

AI_SPAM_CONFIDENCE = 0.7
NEGATIVE_SCORE_THRESHOLD = -0.7
NEW_USER_MUTE_MIN = 5
DEFAULT_MUTE_MIN = 60


class ModerationAction(str, Enum):
    """Итог обработки сообщения."""
    NONE = "none"
    DELETE = "delete"
    WARN = "warn"
    BAN = "ban"


@dataclass
class ModerationResult:
    action: ModerationAction
    reason: str = ""
    warn_count: int = 0


def mention(user: User) -> str:
    return html.escape(user.first_name or user.username or str(user.id))


def has_media(message: Message) -> bool:
    return bool(message.photo or message.video or message.document)


class ModerationController:
    """Центральный контроллер модерации.

    Объединяет компоненты модерации: настройки, антиспам, предупреждения,
    статистику и классификатор. Все состояние живёт в хранилище, поэтому
    контроллер создаётся заново на каждый вебхук.
    """

    def __init__(
        self,
        actions: ChatActions,
        store: KeyValueStore,
        classifier: ClassificationClient,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            actions: Исходящие действия в чате
            store: Хранилище состояния
            classifier: Клиент классификации текста
            clock: Источник времени
        """
        self.actions = actions
        self.classifier = classifier
        self.settings = SettingsStore(store)
        self.ledger = WarningLedger(store, clock)
        self.spam = SpamFilter(store)
        self.activity = ActivityTracker(store, clock)
        self.review = ReviewLog(store, clock)
        self.verification = VerificationEngine(store, actions, clock)

    # ========================================================================
    # ВХОД И ВЫХОД
    # ========================================================================

    async def on_user_join(self, chat_id: int, user: User, chat_title: Optional[str], settings: GroupSettings) -> None:
        """Статистика, приветствие и (если включено) временный мут новичка."""
        if user.is_bot:
            return

        await self.activity.record_join_async(chat_id, user.id)

        if settings.welcome_enabled:
            await self.actions.send(chat_id, format_welcome(settings.welcome_message, user, chat_title))

        if settings.mute_new_users:
            until_date = int(time.time()) + NEW_USER_MUTE_MIN * 60
            await self.actions.restrict(chat_id, user.id, until_date=until_date)
            await self.actions.send(
                chat_id,
                f"🔇 {mention(user)}, ты временно ограничен на {NEW_USER_MUTE_MIN} минут. "
                f"Нажми кнопку, когда будешь готов общаться.",
                reply_markup=unmute_keyboard(chat_id, user.id),
            )

    async def on_new_members(self, message: Message) -> GroupSettings:
        chat_id = message.chat_id
        settings = await self.settings.get_async(chat_id)
        for user in message.new_chat_members:
            await self.on_user_join(chat_id, user, message.chat.title, settings)
        if settings.delete_service_messages:
            await self.actions.delete(chat_id, message.message_id)
        return settings

    async def on_left_member(self, message: Message) -> None:
        chat_id = message.chat_id
        settings = await self.settings.get_async(chat_id)
        await self.activity.record_leave_async(chat_id)
        if settings.delete_service_messages:
            await self.actions.delete(chat_id, message.message_id)

    async def on_unmute_request(self, chat_id: int, target_user_id: int, presser_id: int) -> bool:
        """Кнопка самостоятельного снятия мута.

        Работает только для самого новичка и только пока у него нет
        непройденной captcha.
        """
        if presser_id != target_user_id:
            return False
        state = await run_blocking(self.verification.state, chat_id, target_user_id)
        if state == VerificationState.CHALLENGED:
            log.info(safe_log_action("unmute_refused", target_user_id, chat_id, "captcha pending"))
            return False
        return await self.actions.unrestrict(chat_id, target_user_id)

    # ========================================================================
    # СООБЩЕНИЯ
    # ========================================================================

    async def on_message(self, message: Message) -> ModerationResult:
        """Проверить сообщение и обновить статистику.

        Returns:
            ModerationResult с принятым действием
        """
        user = message.from_user
        if user is None:
            return ModerationResult(ModerationAction.NONE)

        chat_id = message.chat_id
        settings = await self.settings.get_async(chat_id)
        result = await self._check(message, user, settings)

        await self.activity.record_message_async(chat_id, user.id)
        return result

    async def _check(self, message: Message, user: User, settings: GroupSettings) -> ModerationResult:
        if message.forward_origin is not None and settings.forward_filtering:
            if not await self._passes_trust(message.chat_id, user.id, FORWARD_TRUST_LEVEL):
                return await self._reject(message, user, "пересылать сообщения", FORWARD_TRUST_LEVEL)

        if has_media(message) and settings.media_filtering:
            if not await self._passes_trust(message.chat_id, user.id, MEDIA_TRUST_LEVEL):
                return await self._reject(message, user, "отправлять медиа", MEDIA_TRUST_LEVEL)

        if not message.text:
            return ModerationResult(ModerationAction.NONE)
        return await self.check_text(message, user, message.text, settings)

    async def check_text(self, message: Message, user: User, text: str, settings: GroupSettings) -> ModerationResult:
        """Проверки текста в фиксированном порядке, до первого нарушения.

        1. Спам по мнению модели (ai_moderation_enabled)
        2. Спам по правилам (anti_spam_enabled)
        3. Автоперевод (auto_translate)
        4. Тональность (sentiment_analysis)
        """
        chat_id = message.chat_id

        if settings.ai_moderation_enabled:
            verdict = (await self.classifier.classify_spam(text)).value
            if verdict.is_spam and verdict.confidence > AI_SPAM_CONFIDENCE:
                await self.actions.delete(chat_id, message.message_id)
                return await self.warn(chat_id, user, f"AI detected spam: {verdict.reason}", settings)

        if settings.anti_spam_enabled:
            spam = await self.spam.check_async(chat_id, user.id, text, settings)
            if spam.is_spam:
                await self.actions.delete(chat_id, message.message_id)
                return await self.warn(chat_id, user, "Spam detected", settings)

        if settings.auto_translate and settings.target_language != "en":
            translated = await self.classifier.translate(text, settings.target_language)
            # Запасной текст при недоступной модели в чат не отправляем
            if translated.available and translated.value.strip() != text.strip():
                await self.actions.send(
                    chat_id,
                    f"🌐 <b>Перевод:</b>\n{html.escape(translated.value)}",
                    reply_to_message_id=message.message_id,
                )

        if settings.sentiment_analysis:
            sentiment = (await self.classifier.classify_sentiment(text)).value
            if sentiment.sentiment == "negative" and sentiment.score < NEGATIVE_SCORE_THRESHOLD:
                await self.review.add_async(
                    chat_id, user.id, message.message_id, text, sentiment.sentiment, sentiment.score
                )

        return ModerationResult(ModerationAction.NONE)

    async def _passes_trust(self, chat_id: int, user_id: int, required: int) -> bool:
        warnings = await self.ledger.get_count_async(chat_id, user_id)
        level = await self.activity.user_trust_level_async(chat_id, user_id, warnings)
        return level >= required

    async def _reject(self, message: Message, user: User, what: str, required: int) -> ModerationResult:
        await self.actions.delete(message.chat_id, message.message_id)
        await self.actions.send(
            message.chat_id,
            f"🚫 {mention(user)}, {what} могут участники с уровнем доверия {required}+. "
            f"Пообщайся в группе подольше.",
        )
        log.info(safe_log_action("gate", user.id, message.chat_id, what))
        return ModerationResult(ModerationAction.DELETE, reason=what)

    # ========================================================================
    # ПРЕДУПРЕЖДЕНИЯ И РУЧНЫЕ ДЕЙСТВИЯ
    # ========================================================================

    async def warn(
        self,
        chat_id: int,
        user: User,
        reason: str,
        settings: Optional[GroupSettings] = None,
    ) -> ModerationResult:
        """Выдать предупреждение и применить эскалацию.

        При достижении max_warnings пользователь банится навсегда,
        а его предупреждения очищаются.
        """
        if settings is None:
            settings = await self.settings.get_async(chat_id)

        count = await self.ledger.add_warning_async(chat_id, user.id, reason)
        result = evaluate(count, settings)

        if result.escalation == WarnEscalation.BAN:
            await self.actions.ban(chat_id, user.id)
            await self.ledger.clear_async(chat_id, user.id)
            log.info(safe_log_action("ban", user.id, chat_id, "warning limit"))

        await self.actions.send(chat_id, format_warning_notice(mention(user), result, html.escape(reason)))
        action = ModerationAction.BAN if result.escalation == WarnEscalation.BAN else ModerationAction.WARN
        return ModerationResult(action, reason=reason, warn_count=count)

    async def clear_warnings(self, chat_id: int, user: User) -> None:
        await self.ledger.clear_async(chat_id, user.id)
        await self.actions.send(chat_id, f"✅ Предупреждения {mention(user)} сброшены.")

    async def ban_user(self, chat_id: int, user: User, reason: str) -> bool:
        ok = await self.actions.ban(chat_id, user.id)
        if ok:
            log.info(safe_log_action("ban", user.id, chat_id, reason))
            await self.actions.send(chat_id, f"🚫 {mention(user)} забанен навсегда.\nПричина: {html.escape(reason)}")
        return ok

    async def kick_user(self, chat_id: int, user: User, reason: str) -> bool:
        ok = await self.actions.kick(chat_id, user.id)
        if ok:
            log.info(safe_log_action("kick", user.id, chat_id, reason))
            await self.actions.send(chat_id, f"👢 {mention(user)} исключён.\nПричина: {html.escape(reason)}")
        return ok

    async def mute_user(self, chat_id: int, user: User, minutes: int = DEFAULT_MUTE_MIN) -> bool:
        ok = await self.actions.mute(chat_id, user.id, minutes)
        if ok:
            log.info(safe_log_action("mute", user.id, chat_id, f"{minutes} min"))
            await self.actions.send(chat_id, f"🔇 {mention(user)} замучен на {minutes} мин.")
        return ok
