# Copyright (c) 2025 sprowii
"""Исходящие действия в чате поверх telegram.Bot.

Каждый вызов best-effort: TelegramError логируется и превращается в
False/None, ядро модерации исключений транспорта не видит и вызовы не повторяет.
"""
import time
from typing import Optional

from telegram import Bot, ChatPermissions, InlineKeyboardMarkup, Message
from telegram.constants import ParseMode
from telegram.error import TelegramError

from groupwarden.logging_config import log
from groupwarden.security.data_protection import pseudonymize_chat_id, pseudonymize_id

# Права участника, пока он не прошёл проверку или замучен
RESTRICTED_PERMISSIONS = ChatPermissions(
    can_send_messages=False,
    can_send_polls=False,
    can_send_other_messages=False,
    can_add_web_page_previews=False,
    can_change_info=False,
    can_invite_users=False,
    can_pin_messages=False,
)

# Права после успешной проверки или снятия мута
MEMBER_PERMISSIONS = ChatPermissions(
    can_send_messages=True,
    can_send_audios=True,
    can_send_documents=True,
    can_send_photos=True,
    can_send_videos=True,
    can_send_video_notes=True,
    can_send_voice_notes=True,
    can_send_polls=True,
    can_send_other_messages=True,
    can_add_web_page_previews=True,
    can_change_info=False,
    can_invite_users=True,
    can_pin_messages=False,
)


class ChatActions:
    """Обёртка над Bot для действий модерации."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(
        self,
        chat_id: int,
        text: str,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
        reply_to_message_id: Optional[int] = None,
        parse_mode: Optional[str] = ParseMode.HTML,
    ) -> Optional[Message]:
        try:
            return await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                reply_markup=reply_markup,
                reply_to_message_id=reply_to_message_id,
                parse_mode=parse_mode,
            )
        except TelegramError as exc:
            log.error(f"Не удалось отправить сообщение в чат {pseudonymize_chat_id(chat_id)}: {exc}")
            return None

    async def edit(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
    ) -> bool:
        try:
            await self.bot.edit_message_text(
                chat_id=chat_id,
                message_id=message_id,
                text=text,
                reply_markup=reply_markup,
                parse_mode=ParseMode.HTML,
            )
            return True
        except TelegramError as exc:
            log.error(f"Не удалось изменить сообщение {message_id}: {exc}")
            return False

    async def delete(self, chat_id: int, message_id: Optional[int]) -> bool:
        if not message_id:
            return False
        try:
            await self.bot.delete_message(chat_id=chat_id, message_id=message_id)
            return True
        except TelegramError as exc:
            log.error(f"Не удалось удалить сообщение {message_id} в чате {pseudonymize_chat_id(chat_id)}: {exc}")
            return False

    async def restrict(
        self,
        chat_id: int,
        user_id: int,
        permissions: ChatPermissions = RESTRICTED_PERMISSIONS,
        until_date: Optional[int] = None,
    ) -> bool:
        try:
            await self.bot.restrict_chat_member(
                chat_id=chat_id,
                user_id=user_id,
                permissions=permissions,
                until_date=until_date,
            )
            return True
        except TelegramError as exc:
            log.error(f"Не удалось ограничить {pseudonymize_id(user_id)} в чате {pseudonymize_chat_id(chat_id)}: {exc}")
            return False

    async def unrestrict(self, chat_id: int, user_id: int) -> bool:
        return await self.restrict(chat_id, user_id, permissions=MEMBER_PERMISSIONS)

    async def mute(self, chat_id: int, user_id: int, minutes: int) -> bool:
        until_date = int(time.time()) + minutes * 60
        return await self.restrict(chat_id, user_id, until_date=until_date)

    async def ban(self, chat_id: int, user_id: int, until_date: Optional[int] = None) -> bool:
        """Бан. Без until_date - навсегда."""
        try:
            await self.bot.ban_chat_member(chat_id=chat_id, user_id=user_id, until_date=until_date)
            log.info(f"Пользователь {pseudonymize_id(user_id)} забанен в чате {pseudonymize_chat_id(chat_id)}")
            return True
        except TelegramError as exc:
            log.error(f"Не удалось забанить {pseudonymize_id(user_id)}: {exc}")
            return False

    async def kick(self, chat_id: int, user_id: int) -> bool:
        """Исключить из группы с возможностью вернуться."""
        try:
            await self.bot.ban_chat_member(chat_id=chat_id, user_id=user_id)
            # Сразу разбаниваем, чтобы пользователь мог вернуться
            await self.bot.unban_chat_member(chat_id=chat_id, user_id=user_id)
            log.info(f"Пользователь {pseudonymize_id(user_id)} кикнут из чата {pseudonymize_chat_id(chat_id)}")
            return True
        except TelegramError as exc:
            log.error(f"Не удалось кикнуть {pseudonymize_id(user_id)}: {exc}")
            return False

    async def answer_callback(self, callback_query_id: str, text: Optional[str] = None, show_alert: bool = False) -> bool:
        try:
            await self.bot.answer_callback_query(callback_query_id, text=text, show_alert=show_alert)
            return True
        except TelegramError as exc:
            log.error(f"Не удалось ответить на callback: {exc}")
            return False
