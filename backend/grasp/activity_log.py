"""Append-only activity log from which achievement state is derived.

The log is an immutable value: appending returns a new ``ActivityLog``.
Entry fields are optional so that malformed rows can still be loaded;
achievement rules treat a missing field as "condition not satisfied".
"""

from datetime import date, datetime, timedelta
from typing import ClassVar, Iterable, Optional

from pydantic import BaseModel, ConfigDict

KIND_COMPLETION = "completion"
KIND_MISTAKE_REVIEW = "mistake_review"
KIND_REVISIT = "revisit"
KIND_RETAKE = "retake"

EVENT_KINDS = (KIND_COMPLETION, KIND_MISTAKE_REVIEW, KIND_REVISIT, KIND_RETAKE)


class CompletionEvent(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: ClassVar[str] = KIND_COMPLETION

    actor_id: int
    quiz_id: Optional[int] = None
    completed_at: Optional[datetime] = None
    score: Optional[int] = None
    time_spent: Optional[float] = None
    completed_on_release_day: bool = False
    completed_early: bool = False
    completed_in_half_time: bool = False
    session_id: Optional[str] = None


class MistakeReviewEvent(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: ClassVar[str] = KIND_MISTAKE_REVIEW

    actor_id: int
    quiz_id: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    session_id: Optional[str] = None


class RevisitEvent(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: ClassVar[str] = KIND_REVISIT

    actor_id: int
    quiz_id: Optional[int] = None
    revisited_at: Optional[datetime] = None


class RetakeEvent(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: ClassVar[str] = KIND_RETAKE

    actor_id: int
    quiz_id: Optional[int] = None
    first_score: Optional[int] = None
    second_score: Optional[int] = None
    retaken_at: Optional[datetime] = None
    session_id: Optional[str] = None


def week_key(moment: datetime | date) -> str:
    """ISO week key such as ``2025-W07``."""

    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"


def week_start(key: str) -> Optional[date]:
    """Monday of the ISO week named by ``key``; ``None`` if malformed."""

    try:
        year, week = key.split("-W")
        return date.fromisocalendar(int(year), int(week), 1)
    except (AttributeError, ValueError):
        return None


def longest_week_run(keys: Iterable[str]) -> int:
    """Length of the longest run of calendar-consecutive ISO weeks."""

    starts = sorted({s for s in (week_start(k) for k in keys) if s is not None})
    longest = run = 0
    previous = None
    for start in starts:
        if previous is not None and start - previous == timedelta(weeks=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = start
    return longest


class ActivityLog(BaseModel):
    """One actor's activity, grouped by entry kind."""

    model_config = ConfigDict(frozen=True)

    completions: tuple[CompletionEvent, ...] = ()
    mistake_reviews: tuple[MistakeReviewEvent, ...] = ()
    revisits: tuple[RevisitEvent, ...] = ()
    retakes: tuple[RetakeEvent, ...] = ()

    def appended(self, event) -> "ActivityLog":
        field = {
            KIND_COMPLETION: "completions",
            KIND_MISTAKE_REVIEW: "mistake_reviews",
            KIND_REVISIT: "revisits",
            KIND_RETAKE: "retakes",
        }[event.kind]
        return self.model_copy(update={field: getattr(self, field) + (event,)})

    def weekly_index(self) -> dict[str, frozenset[int]]:
        """Map of ISO week key to the quizzes completed in that week."""

        index: dict[str, set[int]] = {}
        for completion in self.completions:
            if completion.completed_at is None or completion.quiz_id is None:
                continue
            index.setdefault(week_key(completion.completed_at), set()).add(
                completion.quiz_id
            )
        return {key: frozenset(quizzes) for key, quizzes in index.items()}

    @classmethod
    def from_events(cls, events: Iterable) -> "ActivityLog":
        log = cls()
        for event in events:
            log = log.appended(event)
        return log


def event_from_row(row):
    """Convert an ``ActivityEvent`` row into its typed log entry."""

    if row.kind == KIND_COMPLETION:
        return CompletionEvent(
            actor_id=row.actor_id,
            quiz_id=row.quiz_id,
            completed_at=row.occurred_at,
            score=row.score,
            time_spent=row.time_spent,
            completed_on_release_day=bool(row.completed_on_release_day),
            completed_early=bool(row.completed_early),
            completed_in_half_time=bool(row.completed_in_half_time),
            session_id=row.session_id,
        )
    if row.kind == KIND_MISTAKE_REVIEW:
        return MistakeReviewEvent(
            actor_id=row.actor_id,
            quiz_id=row.quiz_id,
            reviewed_at=row.occurred_at,
            session_id=row.session_id,
        )
    if row.kind == KIND_REVISIT:
        return RevisitEvent(
            actor_id=row.actor_id, quiz_id=row.quiz_id, revisited_at=row.occurred_at
        )
    if row.kind == KIND_RETAKE:
        return RetakeEvent(
            actor_id=row.actor_id,
            quiz_id=row.quiz_id,
            first_score=row.first_score,
            second_score=row.second_score,
            retaken_at=row.occurred_at,
            session_id=row.session_id,
        )
    return None


def occurred_at(event) -> Optional[datetime]:
    return {
        KIND_COMPLETION: lambda e: e.completed_at,
        KIND_MISTAKE_REVIEW: lambda e: e.reviewed_at,
        KIND_REVISIT: lambda e: e.revisited_at,
        KIND_RETAKE: lambda e: e.retaken_at,
    }[event.kind](event)
