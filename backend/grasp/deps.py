"""FastAPI dependencies wiring the quiz engine into request handlers."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from grasp.auth import get_current_user
from grasp.completion import CompletionService
from grasp.database import get_session_factory
from grasp.models import User
from grasp.quiz_store import SqlQuizStore
from grasp.session_machine import QuizSessionMachine, SessionRegistry, SignalBuffer


def get_quiz_store(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> SqlQuizStore:
    return SqlQuizStore(session_factory)


def get_completion_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> CompletionService:
    return CompletionService(session_factory)


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_machine(
    current_user: User = Depends(get_current_user),
    registry: SessionRegistry = Depends(get_registry),
    store: SqlQuizStore = Depends(get_quiz_store),
    service: CompletionService = Depends(get_completion_service),
) -> QuizSessionMachine:
    """Return the caller's session machine, creating it on first use."""

    return registry.get_or_create(
        current_user.id,
        lambda: QuizSessionMachine(
            current_user.id, store, service, notifier=SignalBuffer()
        ),
    )
