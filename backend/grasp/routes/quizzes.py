"""Quiz listing and the stateless submission endpoint."""

import hashlib
import json
import logging
import re
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from grasp.achievements import QUIZ_PERFECT
from grasp.auth import get_current_user
from grasp.completion import CompletionService, submission_outcome
from grasp.crud import get_published_quizzes
from grasp.database import get_session
from grasp.deps import get_completion_service, get_quiz_store
from grasp.errors import InvalidSubmissionError, TransientError
from grasp.models import User
from grasp.quiz_store import SqlQuizStore, load_quiz
from grasp.schemas import QuizRead, QuizSubmission, SubmissionResult
from grasp.session_machine import compute_score

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quizzes", tags=["quizzes"])

OPTION_KEY = re.compile(r"^[A-Z]$")


@router.get("/", response_model=List[QuizRead])
async def list_quizzes(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return await get_published_quizzes(db)


def validate_submission(quiz_id: int, submission: QuizSubmission) -> None:
    """Reject malformed payloads before anything is loaded or stored."""

    total = submission.total_questions
    if submission.quiz_id != quiz_id:
        raise InvalidSubmissionError("quizId does not match the quiz being submitted")
    if total <= 0:
        raise InvalidSubmissionError("totalQuestions must be positive")
    if not 0 <= submission.correct_answers <= total:
        raise InvalidSubmissionError("correctAnswers must be between 0 and totalQuestions")
    if submission.correct_answers > len(submission.answers):
        raise InvalidSubmissionError("correctAnswers exceeds the number of answers")
    for index, key in submission.answers.items():
        if not 0 <= index < total:
            raise InvalidSubmissionError(f"Answer index {index} out of range")
        if not OPTION_KEY.match(key):
            raise InvalidSubmissionError(f"Invalid option key {key!r}")
    if submission.score != compute_score(submission.correct_answers, total):
        raise InvalidSubmissionError("score does not match correctAnswers/totalQuestions")


def attempt_key(actor_id: int, submission: QuizSubmission) -> str:
    """Stable attempt id for submissions that carry no ``sessionId``.

    Identical payloads from the same actor map to the same key, so a retried
    request is recorded once.
    """

    if submission.session_id:
        return submission.session_id
    payload = submission.model_dump(exclude={"session_id"})
    payload["actor_id"] = actor_id
    digest = hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8"))
    return "auto-" + digest.hexdigest()[:32]


@router.post("/{quiz_id}/submit", response_model=SubmissionResult)
async def submit_quiz(
    quiz_id: int,
    submission: QuizSubmission,
    current_user: User = Depends(get_current_user),
    store: SqlQuizStore = Depends(get_quiz_store),
    service: CompletionService = Depends(get_completion_service),
):
    validate_submission(quiz_id, submission)
    quiz, questions = await load_quiz(store, quiz_id)
    if submission.total_questions != len(questions):
        raise InvalidSubmissionError("totalQuestions does not match the quiz")

    outcome = submission_outcome(
        actor_id=current_user.id,
        quiz=quiz,
        session_id=attempt_key(current_user.id, submission),
        correct_count=submission.correct_answers,
        total_questions=submission.total_questions,
        score=submission.score,
        time_spent=submission.time_spent / 1000.0,
    )
    logger.info(
        "Actor %s submitted quiz %s with score %s",
        current_user.id,
        quiz_id,
        outcome.score,
    )

    # The score is final at this point; persistence failures only cost the
    # achievement notifications.
    new_achievements: List[str] = []
    try:
        receipt = await service.complete(outcome)
        new_achievements.extend(receipt.new_achievements)
    except TransientError:
        logger.exception("Recording submission of quiz %s failed", quiz_id)
    try:
        if await service.award_perfect(outcome):
            new_achievements.append(QUIZ_PERFECT)
    except TransientError:
        logger.exception("Perfect score award for quiz %s failed", quiz_id)

    return SubmissionResult(
        score=outcome.score,
        correct_answers=outcome.correct_count,
        total_questions=outcome.total_questions,
        new_achievements=new_achievements,
    )
