# Copyright (c) 2025 sprowii
"""Security-related helpers.

Модули:
- data_protection: Псевдонимизация id в логах и шифрование сохраняемого текста
"""
from groupwarden.security.data_protection import (
    protect_text,
    pseudonymize_chat_id,
    pseudonymize_id,
    reveal_text,
    safe_log_action,
)

__all__ = [
    "protect_text",
    "pseudonymize_chat_id",
    "pseudonymize_id",
    "reveal_text",
    "safe_log_action",
]
