"""Schemas for quiz listings and in-progress quiz sessions."""

from datetime import date
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict


class QuizRead(BaseModel):
    id: int
    title: str
    course: str
    week: Optional[str] = None
    time_limit_minutes: Optional[int] = None
    release_date: Optional[date] = None
    due_date: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class OptionRead(BaseModel):
    key: str
    text: str


class QuestionRead(BaseModel):
    index: int
    prompt: str
    options: List[OptionRead]
    selected_key: Optional[str] = None
    # Only present once the question has been answered.
    is_correct: Optional[bool] = None
    feedback: Optional[str] = None


class OutcomeRead(BaseModel):
    score: int
    correct_answers: int
    total_questions: int
    is_perfect: bool
    time_spent: float


class SessionRead(BaseModel):
    state: str
    session_id: Optional[str] = None
    quiz_id: Optional[int] = None
    title: Optional[str] = None
    current_index: Optional[int] = None
    total_questions: int = 0
    answered: int = 0
    question: Optional[QuestionRead] = None
    outcome: Optional[OutcomeRead] = None
    error: Optional[str] = None


class AnswerSelect(BaseModel):
    key: str


class AnswerFeedbackRead(BaseModel):
    index: int
    is_correct: bool
    feedback: Optional[str] = None


class MistakeRead(BaseModel):
    index: int
    prompt: str
    options: List[OptionRead]
    selected_key: Optional[str] = None
    correct_key: str
    correct_text: str


class SignalRead(BaseModel):
    type: Literal["answer_feedback", "newly_earned"]
    index: Optional[int] = None
    is_correct: Optional[bool] = None
    achievement_id: Optional[str] = None
