"""Endpoints driving the caller's quiz-taking session."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from grasp.crud import get_settings
from grasp.database import get_session
from grasp.deps import get_machine
from grasp.schemas import (
    AnswerFeedbackRead,
    AnswerSelect,
    MistakeRead,
    OptionRead,
    OutcomeRead,
    QuestionRead,
    SessionRead,
    SignalRead,
)
from grasp.session_machine import (
    AnswerFeedback,
    QuizSessionMachine,
    SessionState,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _options(view) -> list[OptionRead]:
    return [OptionRead(key=o.key, text=o.text) for o in view.options]


def session_read(machine: QuizSessionMachine) -> SessionRead:
    """Snapshot of the machine for the UI; never reveals unanswered keys."""

    session = machine.session
    if session is None:
        return SessionRead(
            state=machine.state.value,
            error=machine.error.message if machine.error else None,
        )
    index = session.current_index
    view = session.current_view
    selected = session.answers.get(index)
    question = QuestionRead(
        index=index,
        prompt=view.question.prompt,
        options=_options(view),
        selected_key=selected,
    )
    if selected is not None:
        question.is_correct = session.feedback[index]
        question.feedback = view.option(selected).feedback
    outcome = None
    if session.outcome is not None:
        outcome = OutcomeRead(
            score=session.outcome.score,
            correct_answers=session.outcome.correct_count,
            total_questions=session.outcome.total_questions,
            is_perfect=session.outcome.is_perfect,
            time_spent=session.outcome.time_spent,
        )
    return SessionRead(
        state=machine.state.value,
        session_id=session.session_id,
        quiz_id=session.quiz.id,
        title=session.quiz.title,
        current_index=index,
        total_questions=len(session.views),
        answered=len(session.answers),
        question=question,
        outcome=outcome,
    )


@router.post("/start/{quiz_id}", response_model=SessionRead)
async def start_session(
    quiz_id: int,
    timeout: Optional[float] = None,
    db: AsyncSession = Depends(get_session),
    machine: QuizSessionMachine = Depends(get_machine),
):
    if machine.state != SessionState.LISTING:
        machine.back_to_list()
    if timeout is None:
        settings = await get_settings(db)
        timeout = settings.quiz_load_timeout_seconds
    session = await machine.start(quiz_id, timeout)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "superseded",
                "message": "Quiz loading was cancelled",
            },
        )
    logger.info("Actor %s started quiz %s", machine.actor_id, quiz_id)
    return session_read(machine)


@router.get("/current", response_model=SessionRead)
async def current_session(machine: QuizSessionMachine = Depends(get_machine)):
    return session_read(machine)


@router.post("/current/answer", response_model=AnswerFeedbackRead)
async def select_answer(
    data: AnswerSelect, machine: QuizSessionMachine = Depends(get_machine)
):
    signal = machine.select_answer(data.key)
    view = machine.session.views[signal.index]
    option = view.option(machine.session.answers[signal.index])
    return AnswerFeedbackRead(
        index=signal.index, is_correct=signal.is_correct, feedback=option.feedback
    )


@router.post("/current/next", response_model=SessionRead)
async def next_question(machine: QuizSessionMachine = Depends(get_machine)):
    machine.next()
    return session_read(machine)


@router.post("/current/prev", response_model=SessionRead)
async def previous_question(machine: QuizSessionMachine = Depends(get_machine)):
    machine.prev()
    return session_read(machine)


@router.post("/current/goto/{index}", response_model=SessionRead)
async def go_to_question(
    index: int, machine: QuizSessionMachine = Depends(get_machine)
):
    machine.go_to(index)
    return session_read(machine)


@router.post("/current/restart", response_model=SessionRead)
async def restart_session(machine: QuizSessionMachine = Depends(get_machine)):
    machine.restart()
    return session_read(machine)


@router.post("/current/review", response_model=List[MistakeRead])
async def review_mistakes(machine: QuizSessionMachine = Depends(get_machine)):
    return [
        MistakeRead(
            index=item.index,
            prompt=item.view.question.prompt,
            options=_options(item.view),
            selected_key=item.selected_key,
            correct_key=item.view.correct_key,
            correct_text=item.view.correct_text,
        )
        for item in machine.review_mistakes()
    ]


@router.delete("/current", response_model=SessionRead)
async def back_to_list(machine: QuizSessionMachine = Depends(get_machine)):
    machine.back_to_list()
    return session_read(machine)


@router.get("/current/signals", response_model=List[SignalRead])
async def drain_signals(machine: QuizSessionMachine = Depends(get_machine)):
    signals = []
    for signal in machine.notifier.drain():
        if isinstance(signal, AnswerFeedback):
            signals.append(
                SignalRead(
                    type="answer_feedback",
                    index=signal.index,
                    is_correct=signal.is_correct,
                )
            )
        else:
            signals.append(
                SignalRead(type="newly_earned", achievement_id=signal.achievement_id)
            )
    return signals
