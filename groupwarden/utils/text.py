# Copyright (c) 2025 sprowii
from typing import List, Optional

TELEGRAM_MESSAGE_LIMIT = 4096


def split_long_message(text: str, max_length: int = TELEGRAM_MESSAGE_LIMIT) -> List[str]:
    """Разбить текст на части не длиннее max_length, по возможности по строкам."""
    if len(text) <= max_length:
        return [text]
    parts: List[str] = []
    current = ""
    for line in text.split("\n"):
        while len(line) > max_length:
            if current:
                parts.append(current.rstrip())
                current = ""
            parts.append(line[:max_length])
            line = line[max_length:]
        if len(current) + len(line) + 1 > max_length:
            parts.append(current.rstrip())
            current = ""
        current += line + "\n"
    if current.strip():
        parts.append(current.rstrip())
    return parts


def command_args(text: Optional[str]) -> List[str]:
    """Аргументы команды: "/mute@bot 30" -> ["30"]."""
    if not text:
        return []
    return text.split()[1:]


def command_name(text: Optional[str]) -> str:
    """Имя команды без упоминания бота: "/Warn@my_bot x" -> "/warn"."""
    if not text:
        return ""
    return text.split()[0].split("@", 1)[0].lower()
