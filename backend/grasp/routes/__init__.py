"""Aggregate import for all API route modules."""

from . import (
    auth,
    quizzes,
    sessions,
    activity,
    achievements,
    settings,
)

__all__ = [
    "auth",
    "quizzes",
    "sessions",
    "activity",
    "achievements",
    "settings",
]
