"""Routes for reading achievement progress and awarded achievements."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from grasp.achievements import CATALOGUE
from grasp.auth import get_current_user, require_role
from grasp.completion import CompletionService
from grasp.crud import (
    Duplicate,
    award_if_absent,
    get_achievement_counts,
    get_user_achievements,
    has_achievement,
)
from grasp.database import get_session
from grasp.deps import get_completion_service
from grasp.models import User
from grasp.schemas import (
    AchievementAward,
    AchievementCheck,
    AchievementCounts,
    AchievementProgressRead,
    AchievementRead,
    AwardResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/achievements", tags=["achievements"])


@router.get("/me", response_model=List[AchievementRead])
async def my_achievements(
    course: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return await get_user_achievements(db, current_user.id, course)


@router.get("/me/counts", response_model=AchievementCounts)
async def my_achievement_counts(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    counts = await get_achievement_counts(db, current_user.id)
    return AchievementCounts(total=sum(counts.values()), by_type=counts)


@router.get("/me/progress", response_model=List[AchievementProgressRead])
async def my_progress(
    current_user: User = Depends(get_current_user),
    service: CompletionService = Depends(get_completion_service),
):
    state = await service.progress(current_user.id)
    return [
        AchievementProgressRead(
            id=d.id,
            title=d.title,
            description=d.description,
            category=d.category,
            earned=state[d.id].earned,
            progress=state[d.id].progress,
        )
        for d in CATALOGUE
    ]


@router.get("/check/{quiz_id}", response_model=AchievementCheck)
async def check_achievement(
    quiz_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    found = await has_achievement(db, current_user.id, quiz_id)
    return AchievementCheck(quiz_id=quiz_id, has_achievement=found)


@router.post("/", response_model=AwardResult)
async def award_achievement(
    data: AchievementAward,
    current_user: User = Depends(require_role("instructor", "admin")),
    db: AsyncSession = Depends(get_session),
):
    """Manually award an achievement; repeating the award is a no-op."""

    if await db.get(User, data.actor_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    metadata = data.model_dump(
        include={"title", "description", "course"}, exclude_none=True
    )
    result = await award_if_absent(
        db, data.actor_id, data.quiz_id, data.achievement_type, metadata
    )
    if isinstance(result, Duplicate):
        return AwardResult(status="duplicate")
    logger.info(
        "User %s awarded %s to actor %s",
        current_user.id,
        data.achievement_type,
        data.actor_id,
    )
    return AwardResult(
        status="awarded", achievement=AchievementRead.model_validate(result)
    )
