# Copyright (c) 2025 sprowii
"""Хранилище настроек групп.

Ключи:
- group:{chat_id}:settings - настройки модерации группы
- verification_settings:{chat_id} - настройки проверки новичков

Запись в хранилище никогда не удаляется; отсутствие записи равносильно
настройкам по умолчанию.
"""
import json
from dataclasses import asdict
from typing import Any

from groupwarden.logging_config import log
from groupwarden.moderation.models import GroupSettings, VerificationSettings
from groupwarden.security.data_protection import pseudonymize_chat_id
from groupwarden.storage.kv import KeyValueStore, run_blocking

VERIFICATION_SETTINGS_PREFIX = "verification_settings:"


def _settings_key(chat_id: int) -> str:
    return f"group:{chat_id}:settings"


def _verification_key(chat_id: int) -> str:
    return f"{VERIFICATION_SETTINGS_PREFIX}{chat_id}"


def _check_fields(allowed: list, partial: dict) -> None:
    unknown = sorted(set(partial) - set(allowed))
    if unknown:
        raise ValueError(f"Неизвестные поля настроек: {', '.join(unknown)}")


class SettingsStore:
    """Чтение и частичное обновление настроек группы."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    # ========================================================================
    # GROUP SETTINGS
    # ========================================================================

    def get(self, chat_id: int) -> GroupSettings:
        """Загрузить настройки группы.

        Никогда не падает: при отсутствии записи, битом JSON или ошибке
        хранилища возвращает настройки по умолчанию.
        """
        try:
            raw_value = self.store.get(_settings_key(chat_id))
        except Exception as exc:
            log.warning(f"Ошибка чтения настроек чата {pseudonymize_chat_id(chat_id)}: {exc}")
            return GroupSettings(chat_id=chat_id)

        if not raw_value:
            return GroupSettings(chat_id=chat_id)

        try:
            data = json.loads(raw_value)
            return GroupSettings.from_dict(chat_id, data)
        except (json.JSONDecodeError, TypeError, AttributeError) as exc:
            log.warning(f"Некорректные настройки чата {pseudonymize_chat_id(chat_id)}: {exc}")
            return GroupSettings(chat_id=chat_id)

    def update(self, chat_id: int, **partial: Any) -> GroupSettings:
        """Поверхностно слить partial с текущими настройками и сохранить.

        Raises:
            ValueError: partial содержит неизвестное поле (ничего не записано)
        """
        _check_fields(GroupSettings.field_names(), partial)
        current = asdict(self.get(chat_id))
        current.update(partial)
        del current["chat_id"]
        self.store.set(_settings_key(chat_id), json.dumps(current, ensure_ascii=False))
        log.info(f"Настройки чата {pseudonymize_chat_id(chat_id)} обновлены: {sorted(partial)}")
        return GroupSettings.from_dict(chat_id, current)

    async def get_async(self, chat_id: int) -> GroupSettings:
        return await run_blocking(self.get, chat_id)

    async def update_async(self, chat_id: int, **partial: Any) -> GroupSettings:
        return await run_blocking(self.update, chat_id, **partial)

    # ========================================================================
    # VERIFICATION SETTINGS
    # ========================================================================

    def get_verification(self, chat_id: int) -> VerificationSettings:
        try:
            raw_value = self.store.get(_verification_key(chat_id))
            if not raw_value:
                return VerificationSettings(chat_id=chat_id)
            return VerificationSettings.from_dict(chat_id, json.loads(raw_value))
        except Exception as exc:
            log.warning(f"Ошибка чтения настроек проверки чата {pseudonymize_chat_id(chat_id)}: {exc}")
            return VerificationSettings(chat_id=chat_id)

    def update_verification(self, chat_id: int, **partial: Any) -> VerificationSettings:
        _check_fields(VerificationSettings.field_names(), partial)
        current = asdict(self.get_verification(chat_id))
        current.update(partial)
        del current["chat_id"]
        self.store.set(_verification_key(chat_id), json.dumps(current))
        return VerificationSettings.from_dict(chat_id, current)

    async def get_verification_async(self, chat_id: int) -> VerificationSettings:
        return await run_blocking(self.get_verification, chat_id)

    async def update_verification_async(self, chat_id: int, **partial: Any) -> VerificationSettings:
        return await run_blocking(self.update_verification, chat_id, **partial)
