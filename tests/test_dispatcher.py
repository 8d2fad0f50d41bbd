# Copyright (c) 2025 sprowii
"""Tests for update routing."""

import random

import pytest
from telegram import Chat, Update

from groupwarden.bot.dispatcher import UpdateDispatcher
from groupwarden.moderation.captcha import VerificationEngine, VerificationState
from tests.conftest import CHAT_ID, make_callback, make_chat, make_message, make_user, sent_texts


@pytest.fixture
def dispatcher(bot, store, classifier, clock):
    return UpdateDispatcher(bot, store, classifier, clock)


class TestMessageRouting:
    @pytest.mark.asyncio
    async def test_private_chat_gets_help_only(self, dispatcher, bot, classifier):
        private = make_chat(42, Chat.PRIVATE, title=None)
        await dispatcher.dispatch(Update(1, message=make_message("/start", chat=private)))

        assert "Бот-модератор" in sent_texts(bot)[0]
        assert classifier.calls == []

    @pytest.mark.asyncio
    async def test_private_chat_text_ignored(self, dispatcher, bot, classifier):
        private = make_chat(42, Chat.PRIVATE, title=None)
        await dispatcher.dispatch(Update(1, message=make_message("hi", chat=private)))

        bot.send_message.assert_not_awaited()
        assert classifier.calls == []

    @pytest.mark.asyncio
    async def test_group_text_goes_through_pipeline(self, dispatcher, classifier):
        await dispatcher.dispatch(Update(1, message=make_message("hello")))
        assert classifier.calls == ["spam"]

    @pytest.mark.asyncio
    async def test_commands_routed(self, dispatcher, bot):
        await dispatcher.dispatch(Update(1, message=make_message("/rules")))
        assert "Правила группы" in sent_texts(bot)[0]

    @pytest.mark.asyncio
    async def test_join_starts_verification_when_enabled(self, dispatcher, store):
        dispatcher.controller.settings.update_verification(CHAT_ID, enabled=True)
        newcomer = make_user(7, "Bob")

        await dispatcher.dispatch(Update(1, message=make_message(new_chat_members=(newcomer,))))

        assert dispatcher.verification.load(CHAT_ID, 7) is not None

    @pytest.mark.asyncio
    async def test_join_without_verification(self, dispatcher):
        await dispatcher.dispatch(Update(1, message=make_message(new_chat_members=(make_user(7, "Bob"),))))
        assert dispatcher.verification.load(CHAT_ID, 7) is None


class TestCallbacks:
    @pytest.mark.asyncio
    async def test_verify_by_other_user_rejected(self, dispatcher, bot):
        query = make_callback(f"verify:{CHAT_ID}:7:0", user=make_user(8, "Eve"))
        await dispatcher.dispatch(Update(1, callback_query=query))

        assert bot.answer_callback_query.call_args.kwargs["text"] == "Эта проверка не для тебя."

    @pytest.mark.asyncio
    async def test_verify_correct_answer(self, dispatcher, bot, store, actions, clock):
        engine = VerificationEngine(store, actions, clock, random.Random(3))
        challenge = await engine.start(CHAT_ID, make_user(7, "Bob"))

        query = make_callback(f"verify:{CHAT_ID}:7:{challenge.correct_index}", user=make_user(7, "Bob"))
        await dispatcher.dispatch(Update(1, callback_query=query))

        assert bot.answer_callback_query.call_args.kwargs["text"] == "✅ Верно!"
        assert engine.load(CHAT_ID, 7) is None

    @pytest.mark.asyncio
    async def test_verify_expired(self, dispatcher, bot):
        query = make_callback(f"verify:{CHAT_ID}:7:0", user=make_user(7, "Bob"))
        await dispatcher.dispatch(Update(1, callback_query=query))
        assert "истекла" in bot.answer_callback_query.call_args.kwargs["text"]

    @pytest.mark.asyncio
    async def test_vote(self, dispatcher, bot):
        poll = dispatcher.polls.create(CHAT_ID, 1, "Q?", ["a", "b"])

        await dispatcher.dispatch(Update(1, callback_query=make_callback(f"vote:{poll.id}:1")))

        assert dispatcher.polls.load(poll.id).selection(42) == [1]
        assert bot.answer_callback_query.call_args.kwargs["text"] == "✅ Голос учтён"

    @pytest.mark.asyncio
    async def test_vote_on_missing_poll(self, dispatcher, bot):
        await dispatcher.dispatch(Update(1, callback_query=make_callback("vote:nope:0")))
        assert bot.answer_callback_query.call_args.kwargs["text"].startswith("❌")

    @pytest.mark.asyncio
    async def test_close_by_stranger_refused(self, dispatcher, bot):
        poll = dispatcher.polls.create(CHAT_ID, 1, "Q?", ["a", "b"])
        query = make_callback(f"close:{poll.id}", message=make_message("poll"))

        await dispatcher.dispatch(Update(1, callback_query=query))

        assert dispatcher.polls.load(poll.id).closed is False

    @pytest.mark.asyncio
    async def test_unmute_button(self, dispatcher, bot):
        query = make_callback(f"unmute:{CHAT_ID}:42", message=make_message("muted", message_id=9))

        await dispatcher.dispatch(Update(1, callback_query=query))

        bot.restrict_chat_member.assert_awaited_once()
        bot.delete_message.assert_awaited_once_with(chat_id=CHAT_ID, message_id=9)

    @pytest.mark.asyncio
    async def test_unmute_button_by_stranger(self, dispatcher, bot):
        query = make_callback(f"unmute:{CHAT_ID}:7", user=make_user(8, "Eve"))

        await dispatcher.dispatch(Update(1, callback_query=query))

        bot.restrict_chat_member.assert_not_awaited()
        assert bot.answer_callback_query.call_args.kwargs["text"] == "Эта кнопка не для тебя."

    @pytest.mark.asyncio
    async def test_unmute_button_cannot_skip_verification(self, dispatcher, bot):
        dispatcher.controller.settings.update(CHAT_ID, mute_new_users=True)
        dispatcher.controller.settings.update_verification(CHAT_ID, enabled=True)
        newcomer = make_user(7, "Bob")
        await dispatcher.dispatch(Update(1, message=make_message(new_chat_members=(newcomer,))))

        query = make_callback(f"unmute:{CHAT_ID}:7", user=newcomer, message=make_message("muted", message_id=9))
        await dispatcher.dispatch(Update(2, callback_query=query))

        assert dispatcher.verification.state(CHAT_ID, 7) == VerificationState.CHALLENGED
        granted = [
            call for call in bot.restrict_chat_member.call_args_list
            if call.kwargs["permissions"].can_send_messages
        ]
        assert granted == []
        assert "пройди" in bot.answer_callback_query.call_args.kwargs["text"]

    @pytest.mark.asyncio
    async def test_settings_button_ignored_for_members(self, dispatcher, bot):
        query = make_callback("settings:auto_translate", message=make_message("settings"))
        await dispatcher.dispatch(Update(1, callback_query=query))
        assert dispatcher.controller.settings.get(CHAT_ID).auto_translate is False

    @pytest.mark.asyncio
    async def test_unknown_callback_answered(self, dispatcher, bot):
        await dispatcher.dispatch(Update(1, callback_query=make_callback("something")))
        bot.answer_callback_query.assert_awaited_once()
