# Copyright (c) 2025 sprowii
"""Tests for group settings storage."""

import json
from unittest.mock import MagicMock

import pytest

from groupwarden.moderation.models import DEFAULT_BANNED_WORDS, GroupSettings
from groupwarden.moderation.settings import SettingsStore
from tests.conftest import CHAT_ID


class TestGroupSettingsDefaults:
    def test_defaults(self):
        settings = GroupSettings(chat_id=CHAT_ID)

        assert settings.welcome_enabled is True
        assert settings.anti_spam_enabled is True
        assert settings.ai_moderation_enabled is True
        assert settings.max_warnings == 3
        assert settings.mute_new_users is False
        assert settings.auto_translate is False
        assert settings.target_language == "en"
        assert settings.banned_words == DEFAULT_BANNED_WORDS

    def test_banned_words_not_shared(self):
        first = GroupSettings(chat_id=1)
        first.banned_words.append("extra")
        assert GroupSettings(chat_id=2).banned_words == DEFAULT_BANNED_WORDS

    def test_from_dict_ignores_unknown_keys(self):
        settings = GroupSettings.from_dict(CHAT_ID, {"max_warnings": 5, "legacy_flag": True})
        assert settings.max_warnings == 5


class TestSettingsStore:
    def test_missing_record_gives_defaults(self, store):
        settings = SettingsStore(store).get(CHAT_ID)
        assert settings == GroupSettings(chat_id=CHAT_ID)

    def test_update_merges_and_persists(self, store):
        settings_store = SettingsStore(store)
        settings_store.update(CHAT_ID, max_warnings=5)
        settings_store.update(CHAT_ID, auto_translate=True)

        settings = settings_store.get(CHAT_ID)
        assert settings.max_warnings == 5
        assert settings.auto_translate is True
        assert settings.anti_spam_enabled is True

        raw = json.loads(store.get(f"group:{CHAT_ID}:settings"))
        assert "chat_id" not in raw

    def test_unknown_field_rejected_without_write(self, store):
        settings_store = SettingsStore(store)
        with pytest.raises(ValueError):
            settings_store.update(CHAT_ID, max_warnings=4, no_such_field=1)
        assert store.get(f"group:{CHAT_ID}:settings") is None

    def test_corrupt_json_gives_defaults(self, store):
        store.set(f"group:{CHAT_ID}:settings", "{not json")
        assert SettingsStore(store).get(CHAT_ID) == GroupSettings(chat_id=CHAT_ID)

    def test_store_error_gives_defaults(self):
        broken = MagicMock()
        broken.get.side_effect = ConnectionError("redis down")
        assert SettingsStore(broken).get(CHAT_ID) == GroupSettings(chat_id=CHAT_ID)

    def test_verification_settings(self, store):
        settings_store = SettingsStore(store)
        assert settings_store.get_verification(CHAT_ID).enabled is False

        settings_store.update_verification(CHAT_ID, enabled=True)
        verification = settings_store.get_verification(CHAT_ID)
        assert verification.enabled is True
        with pytest.raises(ValueError):
            settings_store.update_verification(CHAT_ID, timeout_sec=60)

    def test_verification_ignores_legacy_fields(self, store):
        store.set(f"verification_settings:{CHAT_ID}", json.dumps({"enabled": True, "timeout_sec": 300}))
        verification = SettingsStore(store).get_verification(CHAT_ID)
        assert verification.enabled is True
        assert not hasattr(verification, "timeout_sec")

    @pytest.mark.asyncio
    async def test_async_wrappers(self, store):
        settings_store = SettingsStore(store)
        await settings_store.update_async(CHAT_ID, target_language="ru")
        settings = await settings_store.get_async(CHAT_ID)
        assert settings.target_language == "ru"
