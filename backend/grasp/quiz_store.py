"""Quiz/question store used by the session engine.

Questions are normalized into a single :class:`Option` shape as they leave
the store. Stored options may be a plain ``key -> text`` mapping, a
``key -> {"text", "feedback"}`` mapping or a list of option dicts; nothing
downstream of this module needs to know which.
"""

import logging
import string
from datetime import date
from typing import Optional, Protocol

from pydantic import BaseModel, ConfigDict, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from grasp.errors import NotFoundError, TransientError, UnavailableError

logger = logging.getLogger(__name__)

OPTION_KEYS = string.ascii_uppercase


class Option(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    text: str
    feedback: Optional[str] = None


class QuestionDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    prompt: str
    options: tuple[Option, ...]
    correct_key: str

    @model_validator(mode="after")
    def _check_options(self):
        if len(self.options) > len(OPTION_KEYS):
            raise ValueError(f"at most {len(OPTION_KEYS)} options can be labeled")
        keys = [o.key for o in self.options]
        if len(set(keys)) != len(keys):
            raise ValueError("option keys must be unique")
        if self.correct_key not in keys:
            raise ValueError(f"correct key {self.correct_key!r} is not an option")
        return self


class QuizDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    course: str
    published: bool = False
    time_limit_minutes: Optional[int] = None
    release_date: Optional[date] = None
    due_date: Optional[date] = None

    @property
    def time_limit_seconds(self) -> Optional[float]:
        if not self.time_limit_minutes:
            return None
        return self.time_limit_minutes * 60.0


def _option_from_value(key: str, value) -> Option:
    if isinstance(value, dict):
        return Option(
            key=key,
            text=str(value.get("text", "")),
            feedback=value.get("feedback"),
        )
    return Option(key=key, text=str(value))


def normalize_options(raw) -> tuple[Option, ...]:
    """Convert any stored option representation into ``Option`` tuples."""

    options: list[Option] = []
    if isinstance(raw, dict):
        for key, value in raw.items():
            options.append(_option_from_value(str(key).upper(), value))
    elif isinstance(raw, (list, tuple)):
        for position, value in enumerate(raw):
            key = OPTION_KEYS[position]
            if isinstance(value, dict):
                key = str(value.get("key") or value.get("letter") or key).upper()
            options.append(_option_from_value(key, value))
    return tuple(options)


def question_from_row(row) -> Optional[QuestionDefinition]:
    """Build a question definition, or ``None`` if it cannot be answered."""

    if len(row.options or ()) > len(OPTION_KEYS):
        logger.warning(
            "Question %s has %d options, more than can be labeled; skipping",
            row.id,
            len(row.options),
        )
        return None
    options = normalize_options(row.options)
    correct_key = (row.correct_key or "").upper()
    keys = [o.key for o in options]
    if len(set(keys)) != len(keys) or keys.count(correct_key) != 1:
        logger.warning(
            "Question %s options do not label correct key %r uniquely; skipping",
            row.id,
            row.correct_key,
        )
        return None
    return QuestionDefinition(
        id=row.id, prompt=row.prompt, options=options, correct_key=correct_key
    )


def quiz_from_row(row) -> QuizDefinition:
    return QuizDefinition(
        id=row.id,
        title=row.title,
        course=row.course,
        published=row.published,
        time_limit_minutes=row.time_limit_minutes,
        release_date=row.release_date,
        due_date=row.due_date,
    )


class QuizStore(Protocol):
    async def get_quiz_by_id(self, quiz_id: int) -> QuizDefinition:
        """Return the quiz or raise :class:`NotFoundError`."""

    async def get_approved_questions(
        self, quiz_id: int
    ) -> list[QuestionDefinition]:
        """Return approved questions in authored order (may be empty)."""


class SqlQuizStore:
    """Quiz store reading the ``quiz`` and ``question`` tables."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_quiz_by_id(self, quiz_id: int) -> QuizDefinition:
        from grasp.crud import get_quiz

        try:
            async with self.session_factory() as db:
                row = await get_quiz(db, quiz_id)
        except SQLAlchemyError as exc:
            raise TransientError(f"Could not load quiz {quiz_id}") from exc
        if row is None:
            raise NotFoundError("Quiz not found")
        return quiz_from_row(row)

    async def get_approved_questions(
        self, quiz_id: int
    ) -> list[QuestionDefinition]:
        from grasp.crud import get_approved_questions

        try:
            async with self.session_factory() as db:
                rows = await get_approved_questions(db, quiz_id)
        except SQLAlchemyError as exc:
            raise TransientError(
                f"Could not load questions for quiz {quiz_id}"
            ) from exc
        questions = []
        for row in rows:
            question = question_from_row(row)
            if question is not None:
                questions.append(question)
        return questions


async def load_quiz(
    store: QuizStore, quiz_id: int
) -> tuple[QuizDefinition, list[QuestionDefinition]]:
    """Fetch a quiz that can be taken, raising the appropriate error if not."""

    quiz = await store.get_quiz_by_id(quiz_id)
    if not quiz.published:
        raise UnavailableError("Quiz is not published")
    questions = await store.get_approved_questions(quiz_id)
    if not questions:
        raise UnavailableError("Quiz has no approved questions")
    return quiz, questions
