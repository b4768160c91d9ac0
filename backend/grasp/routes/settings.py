"""Endpoints for viewing and updating site-wide settings."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from grasp.database import get_session
from grasp.models import User
from grasp.auth import require_role
from grasp.schemas import SettingsRead, SettingsUpdate
from grasp.crud import get_settings, save_settings

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/", response_model=SettingsRead)
async def read_settings(db: AsyncSession = Depends(get_session)):
    """Retrieve the current configuration values."""
    settings = await get_settings(db)
    return SettingsRead(
        site_name=settings.site_name,
        weekly_quiz_target=settings.weekly_quiz_target,
        quiz_load_timeout_seconds=settings.quiz_load_timeout_seconds,
    )


@router.put("/", response_model=SettingsRead)
async def update_settings(
    data: SettingsUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    """Update settings; only admins may change configuration."""
    settings = await get_settings(db)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(settings, field, value)
    updated = await save_settings(db, settings)
    return SettingsRead(
        site_name=updated.site_name,
        weekly_quiz_target=updated.weekly_quiz_target,
        quiz_load_timeout_seconds=updated.quiz_load_timeout_seconds,
    )
