# Copyright (c) 2025 sprowii
"""Tests for group commands."""

import pytest

from groupwarden.bot.commands import (
    CommandHandler,
    coerce_setting,
    parse_poll_command,
    parse_switch,
)
from groupwarden.moderation.controller import ModerationController
from groupwarden.moderation.polls import PollEngine, PollValidationError
from tests.conftest import CHAT_ID, make_message, make_user, sent_texts

TARGET = make_user(7, "Bob")


@pytest.fixture
def controller(actions, store, classifier, clock):
    return ModerationController(actions, store, classifier, clock)


@pytest.fixture
def handler(bot, actions, controller, store, clock, classifier):
    return CommandHandler(bot, actions, controller, PollEngine(store, actions, clock), classifier)


def _reply(text: str):
    return make_message(text, reply_to_message=make_message("bad words", user=TARGET, message_id=50))


class TestParsers:
    @pytest.mark.parametrize("raw, expected", [("on", True), ("OFF", False), ("да", True), ("maybe", None)])
    def test_parse_switch(self, raw, expected):
        assert parse_switch(raw) is expected

    def test_coerce_setting(self):
        assert coerce_setting("max_warnings", "5") == 5
        assert coerce_setting("auto_translate", "on") is True
        assert coerce_setting("banned_words", "a, b,,c") == ["a", "b", "c"]
        assert coerce_setting("target_language", " de ") == "de"

    @pytest.mark.parametrize("name, raw", [("max_warnings", "0"), ("max_warnings", "x"), ("nope", "1"), ("chat_id", "1")])
    def test_coerce_setting_rejects(self, name, raw):
        with pytest.raises(ValueError):
            coerce_setting(name, raw)

    def test_parse_poll_command(self):
        params = parse_poll_command(["--multi", "--minutes=30", "Where?", "|", "Park", "|", "Cinema"])
        assert params == {
            "question": "Where?",
            "options": ["Park", "Cinema"],
            "is_anonymous": True,
            "multiple_answers": True,
            "expiry_minutes": 30,
        }

    def test_parse_poll_command_bad_flag(self):
        with pytest.raises(PollValidationError):
            parse_poll_command(["--minutes=0", "Q", "|", "a", "|", "b"])


class TestAdminGate:
    @pytest.mark.asyncio
    async def test_non_admin_is_silently_ignored(self, handler, bot, controller):
        await handler.handle(_reply("/warn flood"))

        bot.send_message.assert_not_awaited()
        assert controller.ledger.get_count(CHAT_ID, TARGET.id) == 0

    @pytest.mark.asyncio
    async def test_admin_can_warn(self, handler, admin_bot, controller):
        await handler.handle(_reply("/warn@groupwarden_bot flood"))

        assert controller.ledger.get_count(CHAT_ID, TARGET.id) == 1
        assert any("flood" in text for text in sent_texts(admin_bot))

    @pytest.mark.asyncio
    async def test_warn_needs_reply(self, handler, admin_bot, controller):
        await handler.handle(make_message("/warn"))
        assert "Ответь на сообщение" in sent_texts(admin_bot)[0]

    @pytest.mark.asyncio
    async def test_unwarn(self, handler, admin_bot, controller):
        controller.ledger.add_warning(CHAT_ID, TARGET.id, "spam")
        await handler.handle(_reply("/unwarn"))
        assert controller.ledger.get_count(CHAT_ID, TARGET.id) == 0

    @pytest.mark.asyncio
    async def test_mute_with_minutes(self, handler, admin_bot):
        await handler.handle(_reply("/mute 15"))
        admin_bot.restrict_chat_member.assert_awaited_once()
        assert "15 мин" in sent_texts(admin_bot)[0]

    @pytest.mark.asyncio
    async def test_kick(self, handler, admin_bot):
        await handler.handle(_reply("/kick rude"))
        admin_bot.ban_chat_member.assert_awaited_once()
        admin_bot.unban_chat_member.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_verification_toggle(self, handler, admin_bot, controller):
        await handler.handle(make_message("/verification on"))
        assert controller.settings.get_verification(CHAT_ID).enabled is True

    @pytest.mark.asyncio
    async def test_setwelcome(self, handler, admin_bot, controller):
        await handler.handle(make_message("/setwelcome Hi {username}, welcome to {chatname}"))
        assert controller.settings.get(CHAT_ID).welcome_message == "Hi {username}, welcome to {chatname}"

    @pytest.mark.asyncio
    async def test_settings_update(self, handler, admin_bot, controller):
        await handler.handle(make_message("/settings max_warnings 5"))
        assert controller.settings.get(CHAT_ID).max_warnings == 5

    @pytest.mark.asyncio
    async def test_settings_invalid_value(self, handler, admin_bot, controller):
        await handler.handle(make_message("/settings max_warnings 0"))
        assert controller.settings.get(CHAT_ID).max_warnings == 3
        assert sent_texts(admin_bot)[0].startswith("❌")

    @pytest.mark.asyncio
    async def test_toggle_setting(self, handler, controller):
        settings = await handler.toggle_setting(CHAT_ID, "auto_translate")
        assert settings.auto_translate is True
        assert await handler.toggle_setting(CHAT_ID, "max_warnings") is None


class TestGeneralCommands:
    @pytest.mark.asyncio
    async def test_poll_created(self, handler, bot, store):
        await handler.handle(make_message("/poll Lunch? | Pizza | Sushi"))

        markup = bot.send_message.call_args.kwargs["reply_markup"]
        assert markup.inline_keyboard[0][0].callback_data.startswith("vote:")

    @pytest.mark.asyncio
    async def test_invalid_poll_reports_error(self, handler, bot):
        await handler.handle(make_message("/poll Lunch? | Pizza"))
        assert sent_texts(bot)[0].startswith("❌")

    @pytest.mark.asyncio
    async def test_stats(self, handler, bot, controller):
        controller.activity.record_message(CHAT_ID, 1)
        await handler.handle(make_message("/stats"))
        assert "Сообщений: 1" in sent_texts(bot)[0]

    @pytest.mark.asyncio
    async def test_profile(self, handler, bot):
        await handler.handle(make_message("/profile"))
        assert "Уровень доверия: 1" in sent_texts(bot)[0]
        assert "Последние предупреждения" not in sent_texts(bot)[0]

    @pytest.mark.asyncio
    async def test_profile_lists_recent_warning_reasons(self, handler, controller, bot):
        for reason in ["flood", "links", "caps", "<spam>"]:
            controller.ledger.add_warning(CHAT_ID, 42, reason)

        await handler.handle(make_message("/profile"))

        text = sent_texts(bot)[0]
        assert "Предупреждений: 4" in text
        assert "• &lt;spam&gt;\n• caps\n• links" in text
        assert "flood" not in text

    @pytest.mark.asyncio
    async def test_translate_needs_reply(self, handler, bot, classifier):
        await handler.handle(make_message("/translate ru"))
        assert classifier.calls == []

    @pytest.mark.asyncio
    async def test_summarize_reply(self, handler, bot, classifier):
        await handler.handle(_reply("/summarize"))
        assert classifier.calls == ["summarize"]
        assert bot.send_message.call_args.kwargs["reply_to_message_id"] == 50

    @pytest.mark.asyncio
    async def test_unknown_command_asks_model(self, handler, bot, classifier):
        await handler.handle(make_message("/whatever is this"))
        assert classifier.calls == ["respond"]
        assert "hello" in sent_texts(bot)[0]
