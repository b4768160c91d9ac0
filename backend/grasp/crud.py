"""Asynchronous CRUD helpers for the application's data models.

Each function in this module encapsulates a specific database operation
using SQLModel and SQLAlchemy. Centralizing the logic keeps route
handlers and the engine services light and makes behavior easier to test.
"""

import logging
from typing import NamedTuple, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func
from sqlmodel import select

from grasp.activity_log import (
    ActivityLog,
    CompletionEvent,
    MistakeReviewEvent,
    RetakeEvent,
    RevisitEvent,
    event_from_row,
    occurred_at,
)
from grasp.achievements import describe
from grasp.auth import get_password_hash
from grasp.models import (
    User,
    Quiz,
    Question,
    ActivityEvent,
    AchievementRecord,
    Settings,
)

logger = logging.getLogger(__name__)


class Duplicate(NamedTuple):
    """Returned by :func:`award_if_absent` when the award already exists."""

    actor_id: int
    quiz_id: int
    achievement_type: str


async def get_settings(db: AsyncSession) -> Settings:
    """Fetch the singleton settings record, creating it if necessary."""
    result = await db.execute(select(Settings).where(Settings.id == 1))
    settings = result.scalar_one_or_none()
    if not settings:
        settings = Settings()
        db.add(settings)
        await db.commit()
        await db.refresh(settings)
    return settings


async def save_settings(db: AsyncSession, settings: Settings) -> Settings:
    """Persist settings changes and return the refreshed object."""

    db.add(settings)
    await db.commit()
    await db.refresh(settings)
    return settings


async def create_user(db: AsyncSession, user: User) -> User:
    """Create a new actor, hashing the password if needed."""

    if not user.password_hash.startswith("$2b$"):
        user.password_hash = get_password_hash(user.password_hash)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def ensure_demo_quizzes(db: AsyncSession) -> None:
    """Seed the database with the built-in demo quizzes."""

    from grasp.quiz_content import DEMO_QUIZZES

    for data in DEMO_QUIZZES:
        result = await db.execute(select(Quiz).where(Quiz.slug == data["slug"]))
        if result.scalar_one_or_none():
            continue
        quiz = Quiz(
            slug=data["slug"],
            title=data["title"],
            course=data["course"],
            week=data.get("week"),
            published=True,
            time_limit_minutes=data.get("time_limit_minutes"),
        )
        db.add(quiz)
        await db.flush()  # ensure quiz.id is populated
        for position, q in enumerate(data["questions"]):
            db.add(
                Question(
                    quiz_id=quiz.id,
                    prompt=q["prompt"],
                    options=q["options"],
                    correct_key=q["answer"],
                    position=position,
                )
            )
    await db.commit()


async def get_published_quizzes(db: AsyncSession) -> list[Quiz]:
    result = await db.execute(
        select(Quiz)
        .where(Quiz.published == True)  # noqa: E712
        .order_by(Quiz.id)
    )
    return result.scalars().all()


async def get_quiz(db: AsyncSession, quiz_id: int) -> Quiz | None:
    result = await db.execute(select(Quiz).where(Quiz.id == quiz_id))
    return result.scalar_one_or_none()


async def get_approved_questions(db: AsyncSession, quiz_id: int) -> list[Question]:
    result = await db.execute(
        select(Question)
        .where(Question.quiz_id == quiz_id, Question.approved == True)  # noqa: E712
        .order_by(Question.position, Question.id)
    )
    return result.scalars().all()


def _row_for_event(event) -> ActivityEvent:
    row = ActivityEvent(
        actor_id=event.actor_id,
        quiz_id=event.quiz_id,
        kind=event.kind,
        session_id=getattr(event, "session_id", None),
    )
    moment = occurred_at(event)
    if moment is not None:
        row.occurred_at = moment
    if isinstance(event, CompletionEvent):
        row.score = event.score
        row.time_spent = event.time_spent
        row.completed_on_release_day = event.completed_on_release_day
        row.completed_early = event.completed_early
        row.completed_in_half_time = event.completed_in_half_time
    elif isinstance(event, RetakeEvent):
        row.first_score = event.first_score
        row.second_score = event.second_score
    return row


async def append_event(
    db: AsyncSession,
    event: CompletionEvent | MistakeReviewEvent | RevisitEvent | RetakeEvent,
) -> ActivityEvent | None:
    """Append one entry to the activity log.

    Returns ``None`` when an entry of the same kind was already recorded for
    the same attempt (``session_id``), which makes retried submissions safe.
    """

    row = _row_for_event(event)
    db.add(row)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info(
            "Skipped duplicate %s event for actor %s session %s",
            event.kind,
            event.actor_id,
            row.session_id,
        )
        return None
    await db.refresh(row)
    return row


async def get_events(
    db: AsyncSession, actor_id: int, kind: str | None = None
) -> list[ActivityEvent]:
    query = select(ActivityEvent).where(ActivityEvent.actor_id == actor_id)
    if kind is not None:
        query = query.where(ActivityEvent.kind == kind)
    result = await db.execute(query.order_by(ActivityEvent.occurred_at, ActivityEvent.id))
    return result.scalars().all()


async def get_activity_log(db: AsyncSession, actor_id: int) -> ActivityLog:
    """Load an actor's whole activity log."""

    events = []
    for row in await get_events(db, actor_id):
        event = event_from_row(row)
        if event is None:
            logger.warning("Ignoring activity event %s of unknown kind %r", row.id, row.kind)
            continue
        events.append(event)
    return ActivityLog.from_events(events)


async def event_exists(db: AsyncSession, actor_id: int, kind: str, quiz_id: int) -> bool:
    """Return ``True`` if the actor logged an event of ``kind`` for the quiz."""

    result = await db.execute(
        select(ActivityEvent.id)
        .where(
            ActivityEvent.actor_id == actor_id,
            ActivityEvent.kind == kind,
            ActivityEvent.quiz_id == quiz_id,
        )
        .limit(1)
    )
    return result.first() is not None


async def award_if_absent(
    db: AsyncSession,
    actor_id: int,
    quiz_id: int,
    achievement_type: str,
    metadata: Optional[dict] = None,
) -> AchievementRecord | Duplicate:
    """Insert an award unless one exists for (actor, quiz, type).

    The unique constraint decides; there is no read before the insert, so
    concurrent callers cannot both succeed.
    """

    metadata = dict(metadata or {})
    title, description = describe(achievement_type)
    record = AchievementRecord(
        actor_id=actor_id,
        quiz_id=quiz_id,
        achievement_type=achievement_type,
        title=metadata.pop("title", title),
        description=metadata.pop("description", description),
        course=metadata.get("course"),
        score=metadata.get("score"),
        source_quiz_id=metadata.get("source_quiz_id"),
    )
    db.add(record)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return Duplicate(actor_id, quiz_id, achievement_type)
    await db.refresh(record)
    logger.info(
        "Awarded %s to actor %s for quiz %s", achievement_type, actor_id, quiz_id
    )
    return record


async def get_user_achievements(
    db: AsyncSession, actor_id: int, course: str | None = None
) -> list[AchievementRecord]:
    """Return an actor's achievements, newest first."""

    query = select(AchievementRecord).where(AchievementRecord.actor_id == actor_id)
    if course:
        query = query.where(AchievementRecord.course == course)
    result = await db.execute(
        query.order_by(AchievementRecord.awarded_at.desc(), AchievementRecord.id.desc())
    )
    return result.scalars().all()


async def get_achievement_counts(db: AsyncSession, actor_id: int) -> dict[str, int]:
    result = await db.execute(
        select(AchievementRecord.achievement_type, func.count())
        .where(AchievementRecord.actor_id == actor_id)
        .group_by(AchievementRecord.achievement_type)
    )
    return {achievement_type: count for achievement_type, count in result.all()}


async def has_achievement(db: AsyncSession, actor_id: int, quiz_id: int) -> bool:
    result = await db.execute(
        select(AchievementRecord.id)
        .where(
            AchievementRecord.actor_id == actor_id,
            AchievementRecord.quiz_id == quiz_id,
        )
        .limit(1)
    )
    return result.first() is not None
