"""Convenience imports for all schema classes used by the API."""

from .user import UserCreate, UserResponse, UserLogin
from .settings import SettingsRead, SettingsUpdate
from .quiz import (
    QuizRead,
    OptionRead,
    QuestionRead,
    OutcomeRead,
    SessionRead,
    AnswerSelect,
    AnswerFeedbackRead,
    MistakeRead,
    SignalRead,
)
from .submission import QuizSubmission, SubmissionResult
from .activity import RetakeCreate, ActivityRecorded
from .achievement import (
    AchievementRead,
    AchievementCounts,
    AchievementProgressRead,
    AchievementCheck,
    AchievementAward,
    AwardResult,
)

__all__ = [
    "UserCreate",
    "UserResponse",
    "UserLogin",
    "SettingsRead",
    "SettingsUpdate",
    "QuizRead",
    "OptionRead",
    "QuestionRead",
    "OutcomeRead",
    "SessionRead",
    "AnswerSelect",
    "AnswerFeedbackRead",
    "MistakeRead",
    "SignalRead",
    "QuizSubmission",
    "SubmissionResult",
    "RetakeCreate",
    "ActivityRecorded",
    "AchievementRead",
    "AchievementCounts",
    "AchievementProgressRead",
    "AchievementCheck",
    "AchievementAward",
    "AwardResult",
]
