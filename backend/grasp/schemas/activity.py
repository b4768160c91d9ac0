from typing import List
from pydantic import BaseModel, Field


class RetakeCreate(BaseModel):
    first_score: int = Field(ge=0, le=100)
    second_score: int = Field(ge=0, le=100)


class ActivityRecorded(BaseModel):
    status: str = "recorded"
    kind: str
    quiz_id: int
    # Catalogue achievements this action earned for the first time.
    new_achievements: List[str] = []
