"""Server-side recording of finished attempts.

``CompletionService`` is the persistence collaborator of the session
machine: it appends activity log entries and awards achievements. Every
award goes through :func:`grasp.crud.award_if_absent`, so calling any of
these methods again for the same attempt never awards anything twice.
"""

import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grasp.achievements import (
    QUIZ_COMPLETED,
    QUIZ_PERFECT,
    AchievementStatus,
    evaluate_all,
    newly_earned,
)
from grasp.activity_log import (
    KIND_COMPLETION,
    CompletionEvent,
    MistakeReviewEvent,
    RetakeEvent,
    RevisitEvent,
)
from grasp.crud import (
    Duplicate,
    append_event,
    award_if_absent,
    event_exists,
    get_activity_log,
    get_settings,
)
from grasp.errors import InvalidSubmissionError, TransientError
from grasp.models import ACTOR_WIDE_QUIZ_ID
from grasp.quiz_store import QuizDefinition
from grasp.session_machine import QuizOutcome

logger = logging.getLogger(__name__)


class CompletionReceipt(BaseModel):
    model_config = ConfigDict(frozen=True)

    new_achievements: list[str]
    state: dict[str, AchievementStatus]


def completion_event(outcome: QuizOutcome) -> CompletionEvent:
    """Build the log entry for an outcome, deriving the timing flags."""

    quiz = outcome.quiz
    completed_on = outcome.completed_at.date()
    time_limit = quiz.time_limit_seconds
    return CompletionEvent(
        actor_id=outcome.actor_id,
        quiz_id=quiz.id,
        completed_at=outcome.completed_at,
        score=outcome.score,
        time_spent=outcome.time_spent,
        completed_on_release_day=quiz.release_date is not None
        and completed_on == quiz.release_date,
        completed_early=quiz.due_date is not None and completed_on < quiz.due_date,
        completed_in_half_time=time_limit is not None
        and outcome.time_spent < 0.5 * time_limit,
        session_id=outcome.session_id,
    )

class CompletionService:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def record_completion(self, outcome: QuizOutcome) -> list[str]:
        receipt = await self.complete(outcome)
        return receipt.new_achievements

    async def complete(self, outcome: QuizOutcome) -> CompletionReceipt:
        try:
            async with self.session_factory() as db:
                return await self._complete(db, outcome)
        except SQLAlchemyError as exc:
            raise TransientError("Could not record quiz completion") from exc

    async def _complete(self, db: AsyncSession, outcome: QuizOutcome) -> CompletionReceipt:
        events = [completion_event(outcome)]
        if outcome.previous_score is not None:
            events.append(
                RetakeEvent(
                    actor_id=outcome.actor_id,
                    quiz_id=outcome.quiz.id,
                    first_score=outcome.previous_score,
                    second_score=outcome.score,
                    retaken_at=outcome.completed_at,
                    session_id=outcome.session_id,
                )
            )
        receipt = await self._record_events(
            db, outcome.actor_id, events, outcome.quiz.course, outcome.quiz.id
        )

        result = await award_if_absent(
            db,
            outcome.actor_id,
            outcome.quiz.id,
            QUIZ_COMPLETED,
            {"course": outcome.quiz.course, "score": outcome.score},
        )
        if isinstance(result, Duplicate):
            return receipt
        return CompletionReceipt(
            new_achievements=[QUIZ_COMPLETED] + receipt.new_achievements,
            state=receipt.state,
        )

    async def _record_events(
        self,
        db: AsyncSession,
        actor_id: int,
        events: list,
        course: Optional[str],
        source_quiz_id: Optional[int],
    ) -> CompletionReceipt:
        """Append ``events`` and persist every catalogue achievement now earned.

        Each earned id is (re)offered so an award lost to an earlier failure
        is persisted on the next recorded activity.
        """

        settings = await get_settings(db)
        target = settings.weekly_quiz_target
        before = evaluate_all(await get_activity_log(db, actor_id), target)
        for event in events:
            await append_event(db, event)
        after = evaluate_all(await get_activity_log(db, actor_id), target)
        edges = newly_earned(before, after)
        if edges:
            logger.info("Actor %s crossed into %s", actor_id, ", ".join(edges))

        created = []
        for achievement_id, status in after.items():
            if not status.earned:
                continue
            result = await award_if_absent(
                db,
                actor_id,
                ACTOR_WIDE_QUIZ_ID,
                achievement_id,
                {"course": course, "source_quiz_id": source_quiz_id},
            )
            if not isinstance(result, Duplicate):
                created.append(achievement_id)
        return CompletionReceipt(new_achievements=created, state=after)

    async def award_perfect(self, outcome: QuizOutcome) -> bool:
        if not outcome.is_perfect:
            return False
        try:
            async with self.session_factory() as db:
                result = await award_if_absent(
                    db,
                    outcome.actor_id,
                    outcome.quiz.id,
                    QUIZ_PERFECT,
                    {"course": outcome.quiz.course, "score": outcome.score},
                )
        except SQLAlchemyError as exc:
            raise TransientError("Could not award perfect score") from exc
        return not isinstance(result, Duplicate)

    async def record_mistake_review(
        self,
        actor_id: int,
        quiz_id: int,
        session_id: Optional[str] = None,
        course: Optional[str] = None,
    ) -> list[str]:
        return await self._record(
            MistakeReviewEvent(
                actor_id=actor_id,
                quiz_id=quiz_id,
                reviewed_at=datetime.utcnow(),
                session_id=session_id,
            ),
            course,
        )

    async def record_revisit(
        self, actor_id: int, quiz_id: int, course: Optional[str] = None
    ) -> list[str]:
        return await self._record(
            RevisitEvent(actor_id=actor_id, quiz_id=quiz_id, revisited_at=datetime.utcnow()),
            course,
        )

    async def record_retake(
        self,
        actor_id: int,
        quiz_id: int,
        first_score: int,
        second_score: int,
        course: Optional[str] = None,
    ) -> list[str]:
        async with self.session_factory() as db:
            if not await event_exists(db, actor_id, KIND_COMPLETION, quiz_id):
                raise InvalidSubmissionError("Quiz has not been completed yet")
        return await self._record(
            RetakeEvent(
                actor_id=actor_id,
                quiz_id=quiz_id,
                first_score=first_score,
                second_score=second_score,
                retaken_at=datetime.utcnow(),
            ),
            course,
        )

    async def _record(self, event, course: Optional[str]) -> list[str]:
        """Record one explicit activity and return the newly awarded ids."""
        try:
            async with self.session_factory() as db:
                receipt = await self._record_events(
                    db, event.actor_id, [event], course, event.quiz_id
                )
        except SQLAlchemyError as exc:
            raise TransientError(f"Could not record {event.kind} event") from exc
        return receipt.new_achievements

    async def progress(self, actor_id: int) -> dict[str, AchievementStatus]:
        async with self.session_factory() as db:
            settings = await get_settings(db)
            log = await get_activity_log(db, actor_id)
        return evaluate_all(log, settings.weekly_quiz_target)


def submission_outcome(
    actor_id: int,
    quiz: QuizDefinition,
    session_id: str,
    correct_count: int,
    total_questions: int,
    score: int,
    time_spent: float,
) -> QuizOutcome:
    """Outcome for a submission received over the wire."""

    return QuizOutcome(
        actor_id=actor_id,
        quiz=quiz,
        session_id=session_id,
        score=score,
        correct_count=correct_count,
        total_questions=total_questions,
        time_spent=time_spent,
        completed_at=datetime.utcnow(),
    )
