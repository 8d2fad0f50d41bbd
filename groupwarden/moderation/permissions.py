# Copyright (c) 2025 sprowii
"""Проверка прав администратора.

Команды модерации доступны только администраторам группы. Для остальных
команда молча игнорируется, без ответа в чат.
"""
from telegram import Bot, ChatMember
from telegram.error import TelegramError

from groupwarden.logging_config import log
from groupwarden.security.data_protection import pseudonymize_chat_id, pseudonymize_id

ADMIN_STATUSES = (ChatMember.ADMINISTRATOR, ChatMember.OWNER)


async def is_user_admin(bot: Bot, chat_id: int, user_id: int) -> bool:
    """Проверить, является ли пользователь админом группы.

    Args:
        bot: Telegram Bot
        chat_id: ID группы
        user_id: ID пользователя

    Returns:
        True если пользователь админ или владелец, False иначе (в том числе при ошибке API)
    """
    try:
        member = await bot.get_chat_member(chat_id, user_id)
    except TelegramError as exc:
        log.error(
            f"Ошибка проверки статуса админа для {pseudonymize_id(user_id)} "
            f"в чате {pseudonymize_chat_id(chat_id)}: {exc}"
        )
        return False
    return member.status in ADMIN_STATUSES
