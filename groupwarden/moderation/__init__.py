# Copyright (c) 2025 sprowii
"""Модуль модерации групп.

Компоненты:
- ModerationController: Конвейер проверки сообщений и ручные действия
- SettingsStore: Настройки групп
- WarningLedger: Счётчик и журнал предупреждений
- SpamFilter: Антиспам по правилам
- VerificationEngine: Математическая captcha для новичков
- PollEngine: Опросы с кнопками
- ActivityTracker: Статистика и уровень доверия
- ReviewLog: Журнал негативных сообщений
"""

from groupwarden.moderation.activity import ActivityTracker, GroupStats, trust_level
from groupwarden.moderation.captcha import VerificationEngine, VerificationState, grade_attempt
from groupwarden.moderation.controller import ModerationAction, ModerationController, ModerationResult
from groupwarden.moderation.models import GroupSettings, Poll, VerificationChallenge, VerificationSettings
from groupwarden.moderation.polls import PollEngine, PollValidationError
from groupwarden.moderation.review import ReviewLog
from groupwarden.moderation.settings import SettingsStore
from groupwarden.moderation.spam import SpamCheckResult, SpamFilter, SpamRule
from groupwarden.moderation.warns import WarnEscalation, WarningLedger, WarnResult

__all__ = [
    # Controller
    "ModerationController",
    "ModerationAction",
    "ModerationResult",
    # Models
    "GroupSettings",
    "VerificationSettings",
    "VerificationChallenge",
    "Poll",
    # Settings
    "SettingsStore",
    # Warns
    "WarningLedger",
    "WarnResult",
    "WarnEscalation",
    # Spam
    "SpamFilter",
    "SpamRule",
    "SpamCheckResult",
    # Verification
    "VerificationEngine",
    "VerificationState",
    "grade_attempt",
    # Polls
    "PollEngine",
    "PollValidationError",
    # Activity
    "ActivityTracker",
    "GroupStats",
    "trust_level",
    # Review
    "ReviewLog",
]
