from datetime import datetime
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict


class AchievementRead(BaseModel):
    id: int
    quiz_id: int
    achievement_type: str
    title: str
    description: str
    course: Optional[str] = None
    score: Optional[int] = None
    source_quiz_id: Optional[int] = None
    awarded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AchievementCounts(BaseModel):
    total: int
    by_type: Dict[str, int]


class AchievementProgressRead(BaseModel):
    id: str
    title: str
    description: str
    category: str
    earned: bool
    progress: int


class AchievementCheck(BaseModel):
    quiz_id: int
    has_achievement: bool


class AchievementAward(BaseModel):
    actor_id: int
    quiz_id: int
    achievement_type: str = "quiz_perfect"
    title: Optional[str] = None
    description: Optional[str] = None
    course: Optional[str] = None


class AwardResult(BaseModel):
    status: str  # "awarded" or "duplicate"
    achievement: Optional[AchievementRead] = None
