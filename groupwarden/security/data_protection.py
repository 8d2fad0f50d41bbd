# Copyright (c) 2025 sprowii
"""Защита персональных данных.

Модуль обеспечивает:
- Псевдонимизацию user_id/chat_id в логах приложения
- Шифрование текста сообщений, которые сохраняются для проверки админами

Журнал проверки хранит текст чужих сообщений, поэтому при заданном
DATA_ENCRYPTION_KEY он попадает в Redis только в зашифрованном виде.
"""
import base64
import hashlib
import hmac
import os
import re
import secrets
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from groupwarden.logging_config import log

ENCRYPTED_PREFIX = "enc:"

_HASH_SALT = os.getenv("DATA_HASH_SALT")
if not _HASH_SALT:
    log.warning("DATA_HASH_SALT не задан, генерирую временную соль (псевдонимы сменятся после рестарта)")
    _HASH_SALT = secrets.token_hex(32)


def _build_fernet(raw_key: Optional[str]) -> Optional[Fernet]:
    if not raw_key:
        return None
    try:
        # Ключ уже в формате Fernet
        return Fernet(raw_key.encode())
    except ValueError:
        # Обычный пароль - деривируем ключ
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=_HASH_SALT.encode()[:16],
            iterations=100000,
        )
        return Fernet(base64.urlsafe_b64encode(kdf.derive(raw_key.encode())))


_fernet: Optional[Fernet] = _build_fernet(os.getenv("DATA_ENCRYPTION_KEY"))
if _fernet is None:
    log.warning("DATA_ENCRYPTION_KEY не задан, текст сообщений в журнале проверки хранится открыто")


# ============================================================================
# ПСЕВДОНИМИЗАЦИЯ
# ============================================================================

def pseudonymize_id(user_id: Optional[int], context: str = "default") -> str:
    """Псевдоним для id через HMAC-SHA256.

    Один и тот же id всегда даёт один и тот же псевдоним, но восстановить
    id без соли нельзя. Разные контексты дают разные псевдонимы.
    """
    message = f"{context}:{user_id}".encode()
    h = hmac.new(_HASH_SALT.encode(), message, hashlib.sha256)
    return f"u_{h.hexdigest()[:16]}"


def pseudonymize_chat_id(chat_id: int) -> str:
    return pseudonymize_id(chat_id, context="chat")


def safe_log_action(
    action_type: str,
    target_user_id: int,
    chat_id: int,
    reason: Optional[str] = None,
) -> str:
    """Безопасная строка для лога действия модерации."""
    target = pseudonymize_id(target_user_id)
    chat = pseudonymize_chat_id(chat_id)
    safe_reason = ""
    if reason:
        # Убираем @username из причины
        safe_reason = re.sub(r"@\w+", "@***", reason)[:80]
    return f"[{action_type}] target={target} chat={chat} reason={safe_reason}"


# ============================================================================
# ШИФРОВАНИЕ
# ============================================================================

def protect_text(text: str) -> str:
    """Зашифровать текст для хранения. Без ключа возвращает текст как есть."""
    if not _fernet:
        return text
    return ENCRYPTED_PREFIX + _fernet.encrypt(text.encode()).decode()


def reveal_text(stored: str) -> Optional[str]:
    """Расшифровать текст, сохранённый через protect_text.

    Returns:
        Исходный текст, или None если данные зашифрованы, а ключа нет / он другой
    """
    if not stored.startswith(ENCRYPTED_PREFIX):
        return stored
    if not _fernet:
        log.warning("Попытка расшифровать данные без ключа шифрования")
        return None
    try:
        return _fernet.decrypt(stored[len(ENCRYPTED_PREFIX):].encode()).decode()
    except InvalidToken:
        log.error("Не удалось расшифровать запись: неверный ключ или повреждённые данные")
        return None
