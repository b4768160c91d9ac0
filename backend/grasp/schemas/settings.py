"""Pydantic models for application configuration settings."""

from pydantic import BaseModel, Field


class SettingsRead(BaseModel):
    site_name: str
    weekly_quiz_target: int
    quiz_load_timeout_seconds: float


class SettingsUpdate(BaseModel):
    site_name: str | None = None
    weekly_quiz_target: int | None = Field(default=None, ge=1)
    quiz_load_timeout_seconds: float | None = Field(default=None, gt=0)
