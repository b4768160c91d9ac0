"""Quiz-taking session state machine.

One machine belongs to one actor and runs at most one attempt at a time:

    LISTING --start--> LOADING --ready--> ACTIVE --next at last--> COMPLETED
       ^                  |                  |                        |
       +---- failure -----+                  +<------- restart -------+
       +------------------- back_to_list (from any state) ------------+

Loading is the only transition that suspends. Completion returns the score
synchronously; recording the completion and awarding achievements run as
background tasks whose failures are logged and never alter the outcome.
"""

import asyncio
import enum
import logging
import random
import uuid
from datetime import datetime
from typing import Callable, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from grasp.achievements import QUIZ_PERFECT, round_half_up
from grasp.errors import (
    InvalidSubmissionError,
    InvalidTransitionError,
    QuizEngineError,
    TransientError,
)
from grasp.quiz_store import QuizDefinition, QuizStore, load_quiz
from grasp.randomizer import QuestionView, build_views

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    LISTING = "listing"
    LOADING = "loading"
    ACTIVE = "active"
    COMPLETED = "completed"


class AnswerFeedback(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    is_correct: bool


class NewlyEarned(BaseModel):
    model_config = ConfigDict(frozen=True)

    achievement_id: str


class QuizOutcome(BaseModel):
    """Result of a completed attempt, reported before anything is persisted."""

    model_config = ConfigDict(frozen=True)

    actor_id: int
    quiz: QuizDefinition
    session_id: str
    score: int
    correct_count: int
    total_questions: int
    time_spent: float  # seconds
    completed_at: datetime
    # Score of the attempt this one restarted, if any.
    previous_score: Optional[int] = None

    @property
    def is_perfect(self) -> bool:
        return self.total_questions > 0 and self.correct_count == self.total_questions


class MistakeItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    view: QuestionView
    selected_key: Optional[str] = None


class CompletionRecorder(Protocol):
    async def record_completion(self, outcome: QuizOutcome) -> list[str]:
        """Append the completion and return newly earned achievement ids."""

    async def award_perfect(self, outcome: QuizOutcome) -> bool:
        """Persist the per-quiz perfect score award."""

    async def record_mistake_review(
        self, actor_id: int, quiz_id: int, session_id: str, course: Optional[str] = None
    ) -> list[str]:
        """Append a mistake review entry and return newly earned achievement ids."""


class Notifier(Protocol):
    def answer_feedback(self, signal: AnswerFeedback) -> None: ...

    def newly_earned(self, signal: NewlyEarned) -> None: ...


class SignalBuffer:
    """Notifier that queues signals until the UI collects them."""

    def __init__(self):
        self._signals: list[AnswerFeedback | NewlyEarned] = []

    def answer_feedback(self, signal: AnswerFeedback) -> None:
        self._signals.append(signal)

    def newly_earned(self, signal: NewlyEarned) -> None:
        self._signals.append(signal)

    def drain(self) -> list[AnswerFeedback | NewlyEarned]:
        signals, self._signals = self._signals, []
        return signals


def compute_score(correct_count: int, total_questions: int) -> int:
    if total_questions <= 0:
        return 0
    return round_half_up(100 * correct_count / total_questions)


class AttemptSession:
    """Mutable state of one attempt; owned by a single machine."""

    def __init__(self, quiz: QuizDefinition, views: list[QuestionView], started_at: datetime):
        self.quiz = quiz
        self.views = views
        self.session_id = uuid.uuid4().hex
        self.current_index = 0
        self.answers: dict[int, str] = {}
        self.feedback: dict[int, bool] = {}
        self.started_at = started_at
        self.previous_score: Optional[int] = None
        self.outcome: Optional[QuizOutcome] = None

    @property
    def current_view(self) -> QuestionView:
        return self.views[self.current_index]

    @property
    def correct_count(self) -> int:
        return sum(1 for is_correct in self.feedback.values() if is_correct)


class QuizSessionMachine:
    def __init__(
        self,
        actor_id: int,
        store: QuizStore,
        recorder: CompletionRecorder,
        notifier: Notifier | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.actor_id = actor_id
        self.store = store
        self.recorder = recorder
        self.notifier = notifier if notifier is not None else SignalBuffer()
        self.rng = rng or random.Random()
        self.clock = clock
        self.state = SessionState.LISTING
        self.session: Optional[AttemptSession] = None
        self.error: Optional[QuizEngineError] = None
        self._request_token = 0
        self._pending: set[asyncio.Task] = set()

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            raise InvalidTransitionError(
                f"Not allowed while session is {self.state.value}"
            )

    async def start(self, quiz_id: int, timeout: float) -> Optional[AttemptSession]:
        """Load and randomize a quiz; returns ``None`` if superseded."""

        self._require(SessionState.LISTING)
        self._request_token += 1
        token = self._request_token
        self.state = SessionState.LOADING
        self.error = None
        logger.debug("Actor %s loading quiz %s", self.actor_id, quiz_id)
        try:
            quiz, questions = await asyncio.wait_for(
                load_quiz(self.store, quiz_id), timeout
            )
        except asyncio.TimeoutError:
            error = TransientError(f"Timed out loading quiz after {timeout}s")
            self._fail(token, error)
            raise error
        except asyncio.CancelledError:
            self._fail(token, TransientError("Loading was cancelled"))
            raise
        except QuizEngineError as exc:
            self._fail(token, exc)
            raise
        except Exception as exc:
            error = TransientError("Could not load quiz")
            self._fail(token, error)
            raise error from exc

        if token != self._request_token:
            logger.info(
                "Discarding stale load of quiz %s for actor %s", quiz_id, self.actor_id
            )
            return None
        self.session = AttemptSession(quiz, build_views(questions, self.rng), self.clock())
        self.state = SessionState.ACTIVE
        logger.debug(
            "Actor %s started session %s with %d questions",
            self.actor_id,
            self.session.session_id,
            len(self.session.views),
        )
        return self.session

    def _fail(self, token: int, error: QuizEngineError) -> None:
        if token != self._request_token:
            return
        self.state = SessionState.LISTING
        self.session = None
        self.error = error
        logger.warning("Actor %s could not start quiz: %s", self.actor_id, error.message)

    def select_answer(self, key: str) -> AnswerFeedback:
        self._require(SessionState.ACTIVE)
        session = self.session
        index = session.current_index
        key = str(key).strip().upper()
        view = session.current_view
        if view.option(key) is None:
            raise InvalidSubmissionError(f"Unknown option {key!r}")
        if index in session.answers:
            raise InvalidTransitionError("Question already answered")
        session.answers[index] = key
        session.feedback[index] = view.is_correct(key)
        signal = AnswerFeedback(index=index, is_correct=session.feedback[index])
        self.notifier.answer_feedback(signal)
        return signal

    def next(self) -> Optional[QuizOutcome]:
        """Advance; returns the outcome when leaving the last question."""

        self._require(SessionState.ACTIVE)
        session = self.session
        if session.current_index < len(session.views) - 1:
            session.current_index += 1
            return None
        return self._complete()

    def prev(self) -> None:
        self._require(SessionState.ACTIVE)
        if self.session.current_index > 0:
            self.session.current_index -= 1

    def go_to(self, index: int) -> None:
        self._require(SessionState.ACTIVE)
        if not 0 <= index < len(self.session.views):
            raise InvalidSubmissionError(f"Question index {index} out of range")
        self.session.current_index = index

    def _complete(self) -> QuizOutcome:
        session = self.session
        completed_at = self.clock()
        total = len(session.views)
        correct = session.correct_count
        outcome = QuizOutcome(
            actor_id=self.actor_id,
            quiz=session.quiz,
            session_id=session.session_id,
            score=compute_score(correct, total),
            correct_count=correct,
            total_questions=total,
            time_spent=max(0.0, (completed_at - session.started_at).total_seconds()),
            completed_at=completed_at,
            previous_score=session.previous_score,
        )
        session.outcome = outcome
        self.state = SessionState.COMPLETED
        logger.info(
            "Actor %s completed quiz %s with score %s",
            self.actor_id,
            session.quiz.id,
            outcome.score,
        )
        self._spawn(self._record_completion(outcome))
        if outcome.is_perfect:
            self._spawn(self._award_perfect(outcome))
        return outcome

    def restart(self) -> AttemptSession:
        """Start a new attempt over the same shuffled order."""

        self._require(SessionState.COMPLETED)
        session = self.session
        session.previous_score = session.outcome.score
        session.outcome = None
        session.session_id = uuid.uuid4().hex
        session.current_index = 0
        session.answers = {}
        session.feedback = {}
        session.started_at = self.clock()
        self.state = SessionState.ACTIVE
        return session

    def review_mistakes(self) -> list[MistakeItem]:
        self._require(SessionState.COMPLETED)
        session = self.session
        items = [
            MistakeItem(index=i, view=view, selected_key=session.answers.get(i))
            for i, view in enumerate(session.views)
            if not session.feedback.get(i, False)
        ]
        self._spawn(self._record_mistake_review(session.quiz, session.session_id))
        return items

    def back_to_list(self) -> None:
        # Invalidates any load still in flight.
        self._request_token += 1
        self.state = SessionState.LISTING
        self.session = None

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait until background recording triggered so far has finished."""

        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _record_completion(self, outcome: QuizOutcome) -> None:
        try:
            new_ids = await self.recorder.record_completion(outcome)
        except Exception:
            logger.exception(
                "Recording completion of quiz %s for actor %s failed",
                outcome.quiz.id,
                outcome.actor_id,
            )
            return
        for achievement_id in new_ids:
            self.notifier.newly_earned(NewlyEarned(achievement_id=achievement_id))

    async def _award_perfect(self, outcome: QuizOutcome) -> None:
        try:
            awarded = await self.recorder.award_perfect(outcome)
        except Exception:
            logger.exception(
                "Perfect score award for quiz %s, actor %s failed",
                outcome.quiz.id,
                outcome.actor_id,
            )
            return
        if awarded:
            self.notifier.newly_earned(NewlyEarned(achievement_id=QUIZ_PERFECT))

    async def _record_mistake_review(self, quiz: QuizDefinition, session_id: str) -> None:
        try:
            new_ids = await self.recorder.record_mistake_review(
                self.actor_id, quiz.id, session_id, course=quiz.course
            )
        except Exception:
            logger.exception(
                "Recording mistake review of quiz %s for actor %s failed",
                quiz.id,
                self.actor_id,
            )
            return
        for achievement_id in new_ids:
            self.notifier.newly_earned(NewlyEarned(achievement_id=achievement_id))


class SessionRegistry:
    """Per-actor machines for one application instance."""

    def __init__(self):
        self._machines: dict[int, QuizSessionMachine] = {}

    def get(self, actor_id: int) -> Optional[QuizSessionMachine]:
        return self._machines.get(actor_id)

    def get_or_create(
        self, actor_id: int, factory: Callable[[], QuizSessionMachine]
    ) -> QuizSessionMachine:
        machine = self._machines.get(actor_id)
        if machine is None:
            machine = self._machines[actor_id] = factory()
        return machine

    async def drain_all(self) -> None:
        for machine in list(self._machines.values()):
            await machine.drain()
