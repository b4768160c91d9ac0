"""Wire contract for submitting a finished quiz.

Field names are camelCase on the wire, matching the browser client.
``timeSpent`` is in milliseconds.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class QuizSubmission(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    quiz_id: int
    session_id: Optional[str] = None
    answers: Dict[int, str]
    time_spent: float = Field(ge=0)
    score: int
    correct_answers: int
    total_questions: int


class SubmissionResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    score: int
    correct_answers: int
    total_questions: int
    new_achievements: List[str]
