"""Explicit activity log actions: mistake reviews, revisits and retakes."""

import logging

from fastapi import APIRouter, Depends

from grasp.activity_log import KIND_MISTAKE_REVIEW, KIND_RETAKE, KIND_REVISIT
from grasp.auth import get_current_user
from grasp.completion import CompletionService
from grasp.deps import get_completion_service, get_quiz_store
from grasp.models import User
from grasp.quiz_store import SqlQuizStore
from grasp.schemas import ActivityRecorded, RetakeCreate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/activity", tags=["activity"])


@router.post("/quizzes/{quiz_id}/revisit", response_model=ActivityRecorded)
async def record_revisit(
    quiz_id: int,
    current_user: User = Depends(get_current_user),
    store: SqlQuizStore = Depends(get_quiz_store),
    service: CompletionService = Depends(get_completion_service),
):
    quiz = await store.get_quiz_by_id(quiz_id)
    new_ids = await service.record_revisit(current_user.id, quiz_id, course=quiz.course)
    logger.info("Actor %s revisited quiz %s", current_user.id, quiz_id)
    return ActivityRecorded(kind=KIND_REVISIT, quiz_id=quiz_id, new_achievements=new_ids)


@router.post("/quizzes/{quiz_id}/mistake-review", response_model=ActivityRecorded)
async def record_mistake_review(
    quiz_id: int,
    current_user: User = Depends(get_current_user),
    store: SqlQuizStore = Depends(get_quiz_store),
    service: CompletionService = Depends(get_completion_service),
):
    quiz = await store.get_quiz_by_id(quiz_id)
    new_ids = await service.record_mistake_review(
        current_user.id, quiz_id, course=quiz.course
    )
    logger.info("Actor %s reviewed mistakes on quiz %s", current_user.id, quiz_id)
    return ActivityRecorded(kind=KIND_MISTAKE_REVIEW, quiz_id=quiz_id, new_achievements=new_ids)


@router.post("/quizzes/{quiz_id}/retake", response_model=ActivityRecorded)
async def record_retake(
    quiz_id: int,
    data: RetakeCreate,
    current_user: User = Depends(get_current_user),
    store: SqlQuizStore = Depends(get_quiz_store),
    service: CompletionService = Depends(get_completion_service),
):
    quiz = await store.get_quiz_by_id(quiz_id)
    new_ids = await service.record_retake(
        current_user.id, quiz_id, data.first_score, data.second_score, course=quiz.course
    )
    logger.info(
        "Actor %s retook quiz %s (%s -> %s)",
        current_user.id,
        quiz_id,
        data.first_score,
        data.second_score,
    )
    return ActivityRecorded(kind=KIND_RETAKE, quiz_id=quiz_id, new_achievements=new_ids)
