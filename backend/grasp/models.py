"""Database models used by the GRASP quiz engine.

The models are defined with SQLModel (built on SQLAlchemy and Pydantic)
and represent actors, quizzes with their questions, the append-only
activity log and awarded achievements. Comments are kept concise to avoid
distracting from the field definitions.
"""

from typing import Optional, List
from datetime import datetime, date
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON, UniqueConstraint, Index

# Quiz id used for actor-wide achievements that are not tied to one quiz.
ACTOR_WIDE_QUIZ_ID = 0


class User(SQLModel, table=True):
    """Authenticated actor taking quizzes and earning achievements."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(unique=True, index=True)
    password_hash: str
    role: str = "student"  # 'student', 'instructor', 'admin'
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Quiz(SQLModel, table=True):
    """Published set of questions belonging to a course."""
    id: Optional[int] = Field(default=None, primary_key=True)
    slug: str = Field(unique=True, index=True)
    title: str
    course: str
    week: Optional[str] = None
    published: bool = False
    time_limit_minutes: Optional[int] = None
    release_date: Optional[date] = None
    due_date: Optional[date] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    questions: List["Question"] = Relationship(back_populates="quiz")


class Question(SQLModel, table=True):
    """Multiple choice question; ``options`` is stored as authored."""
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    prompt: str
    # key -> text, key -> {"text", "feedback"}, or a list of option dicts
    options: dict | list = Field(sa_column=Column(JSON), default_factory=dict)
    correct_key: str
    approved: bool = True
    position: int = 0

    quiz: Quiz = Relationship(back_populates="questions")


class ActivityEvent(SQLModel, table=True):
    """Append-only activity log entry; never updated or deleted."""

    __table_args__ = (
        UniqueConstraint("actor_id", "kind", "session_id"),
        Index("ix_activity_actor_kind_quiz", "actor_id", "kind", "quiz_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    actor_id: int = Field(foreign_key="user.id")
    quiz_id: int
    kind: str  # completion, mistake_review, revisit, retake
    session_id: Optional[str] = None
    occurred_at: datetime = Field(default_factory=datetime.utcnow)
    # completion
    score: Optional[int] = None
    time_spent: Optional[float] = None  # seconds
    completed_on_release_day: bool = False
    completed_early: bool = False
    completed_in_half_time: bool = False
    # retake
    first_score: Optional[int] = None
    second_score: Optional[int] = None


class AchievementRecord(SQLModel, table=True):
    """Awarded achievement, at most one per (actor, quiz, type)."""

    __table_args__ = (
        UniqueConstraint("actor_id", "quiz_id", "achievement_type"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    actor_id: int = Field(foreign_key="user.id", index=True)
    quiz_id: int
    achievement_type: str
    title: str
    description: str = ""
    course: Optional[str] = None
    score: Optional[int] = None
    source_quiz_id: Optional[int] = None
    awarded_at: datetime = Field(default_factory=datetime.utcnow)


class Settings(SQLModel, table=True):
    """Singleton table storing site-wide configuration values."""
    id: Optional[int] = Field(default=1, primary_key=True)
    site_name: str = "GRASP"
    # Expected quizzes per week for WeekWarrior; not derived from a schedule.
    weekly_quiz_target: int = 3
    quiz_load_timeout_seconds: float = 10.0
