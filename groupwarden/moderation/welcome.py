# Copyright (c) 2025 sprowii
"""Приветствие новых участников.

Шаблон задаётся командой /setwelcome и поддерживает плейсхолдеры
{username} и {chatname}.
"""
import html
from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, User

DEFAULT_WELCOME = (
    "👋 Добро пожаловать в {chatname}, {username}!\n\n"
    "Пожалуйста, прочитай правила (/rules) и веди себя уважительно."
)


def format_welcome(template: Optional[str], user: User, chat_title: Optional[str]) -> str:
    """Подставить плейсхолдеры в шаблон приветствия с HTML-экранированием."""
    if user.username:
        username_display = f"@{user.username}"
    else:
        username_display = user.first_name or "Участник"

    result = template or DEFAULT_WELCOME
    result = result.replace("{username}", html.escape(username_display))
    result = result.replace("{chatname}", html.escape(chat_title or "группу"))
    return result


def unmute_keyboard(chat_id: int, user_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("🔓 Снять ограничение", callback_data=f"unmute:{chat_id}:{user_id}")]
    ])


def parse_unmute_callback(data: str):
    """Разобрать unmute:{chat_id}:{user_id}. None для чужого формата."""
    parts = data.split(":")
    if len(parts) != 3 or parts[0] != "unmute":
        return None
    try:
        return int(parts[1]), int(parts[2])
    except ValueError:
        return None
