# Copyright (c) 2025 sprowii
"""Tests for the warning ledger and escalation."""

import pytest

from groupwarden.moderation.models import GroupSettings
from groupwarden.moderation.warns import (
    MAX_WARNING_LOG_ENTRIES,
    WARNING_TTL_SEC,
    WarnEscalation,
    WarningLedger,
    evaluate,
    format_warning_notice,
)
from tests.conftest import CHAT_ID

USER_ID = 42


class TestEvaluate:
    def test_below_limit(self):
        result = evaluate(1, GroupSettings(chat_id=CHAT_ID, max_warnings=3))
        assert result.escalation == WarnEscalation.NONE
        assert result.remaining == 2

    def test_ban_at_limit(self):
        result = evaluate(3, GroupSettings(chat_id=CHAT_ID, max_warnings=3))
        assert result.escalation == WarnEscalation.BAN
        assert result.remaining == 0

    def test_ban_above_limit(self):
        result = evaluate(5, GroupSettings(chat_id=CHAT_ID, max_warnings=3))
        assert result.escalation == WarnEscalation.BAN


class TestWarningLedger:
    def test_counts_increase(self, store, clock):
        ledger = WarningLedger(store, clock)
        assert ledger.add_warning(CHAT_ID, USER_ID, "spam") == 1
        assert ledger.add_warning(CHAT_ID, USER_ID, "spam") == 2
        assert ledger.get_count(CHAT_ID, USER_ID) == 2

    def test_window_anchored_to_first_warning(self, store, clock):
        ledger = WarningLedger(store, clock)
        ledger.add_warning(CHAT_ID, USER_ID, "first")
        clock.advance(WARNING_TTL_SEC - 10)
        ledger.add_warning(CHAT_ID, USER_ID, "second")
        clock.advance(10)
        assert ledger.get_count(CHAT_ID, USER_ID) == 0

    def test_log_expires_with_counter(self, store, clock):
        ledger = WarningLedger(store, clock)
        ledger.add_warning(CHAT_ID, USER_ID, "first")
        clock.advance(WARNING_TTL_SEC - 10)
        ledger.add_warning(CHAT_ID, USER_ID, "second")
        clock.advance(10)

        assert ledger.get_count(CHAT_ID, USER_ID) == 0
        assert ledger.get_log(CHAT_ID, USER_ID) == []

    def test_new_window_starts_fresh_log(self, store, clock):
        ledger = WarningLedger(store, clock)
        ledger.add_warning(CHAT_ID, USER_ID, "old")
        store.expire(f"warning_details:{CHAT_ID}:{USER_ID}", WARNING_TTL_SEC * 2)
        clock.advance(WARNING_TTL_SEC)

        assert ledger.add_warning(CHAT_ID, USER_ID, "new") == 1
        entries = ledger.get_log(CHAT_ID, USER_ID)
        assert [(e.reason, e.warning_number) for e in entries] == [("new", 1)]

    def test_log_newest_first_and_bounded(self, store, clock):
        ledger = WarningLedger(store, clock)
        for i in range(MAX_WARNING_LOG_ENTRIES + 5):
            ledger.add_warning(CHAT_ID, USER_ID, f"reason {i}")

        entries = ledger.get_log(CHAT_ID, USER_ID)
        assert len(entries) == MAX_WARNING_LOG_ENTRIES
        assert entries[0].reason == f"reason {MAX_WARNING_LOG_ENTRIES + 4}"
        assert entries[0].warning_number == MAX_WARNING_LOG_ENTRIES + 5

    def test_clear(self, store, clock):
        ledger = WarningLedger(store, clock)
        ledger.add_warning(CHAT_ID, USER_ID, "spam")
        ledger.clear(CHAT_ID, USER_ID)
        assert ledger.get_count(CHAT_ID, USER_ID) == 0
        assert ledger.get_log(CHAT_ID, USER_ID) == []

    def test_users_are_independent(self, store, clock):
        ledger = WarningLedger(store, clock)
        ledger.add_warning(CHAT_ID, USER_ID, "spam")
        assert ledger.get_count(CHAT_ID, USER_ID + 1) == 0

    @pytest.mark.asyncio
    async def test_async_wrappers(self, store, clock):
        ledger = WarningLedger(store, clock)
        assert await ledger.add_warning_async(CHAT_ID, USER_ID, "spam") == 1
        assert await ledger.get_count_async(CHAT_ID, USER_ID) == 1
        assert [e.reason for e in await ledger.get_log_async(CHAT_ID, USER_ID)] == ["spam"]


class TestWarningNotice:
    def test_notice_mentions_remaining(self):
        result = evaluate(1, GroupSettings(chat_id=CHAT_ID))
        text = format_warning_notice("Alice", result, "spam")
        assert "Alice" in text
        assert "2" in text

    def test_ban_notice(self):
        result = evaluate(3, GroupSettings(chat_id=CHAT_ID))
        assert "забанен" in format_warning_notice("Alice", result, "spam")
