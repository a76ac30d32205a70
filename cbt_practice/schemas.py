"""Request and response schemas for the JSON API."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

# --- Admin requests ---


class CreateExamRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None


class UpdateExamRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None


class CreateSubjectRequest(BaseModel):
    exam_id: int
    name: str = Field(..., min_length=1, max_length=200)
    time_limit_minutes: int = Field(..., ge=1, le=600)


class UpdateSubjectRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    time_limit_minutes: Optional[int] = Field(None, ge=1, le=600)


class QuestionIn(BaseModel):
    question_text: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_option: str
    explanation: Optional[str] = None


class CreateQuestionsRequest(BaseModel):
    questions: List[QuestionIn] = Field(..., min_length=1)


# --- Student requests ---


class AnswerIn(BaseModel):
    selected_option: str


class RemainingTimeIn(BaseModel):
    time_remaining_seconds: int


# --- Responses ---


class AttemptOut(BaseModel):
    id: int
    user_id: str
    subject_id: int
    total_questions: int
    time_remaining_seconds: int
    submitted_at: Optional[datetime] = None
    created_at: datetime


class ExamQuestionOut(BaseModel):
    """A question as shown while the exam is running (no answer key)."""

    id: int
    order: int
    question_text: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    selected_option: Optional[str] = None


class AttemptView(BaseModel):
    attempt: AttemptOut
    subject_name: str
    questions: List[ExamQuestionOut]


class QuestionResult(ExamQuestionOut):
    correct_option: str
    explanation: Optional[str] = None
    is_correct: bool


class AttemptResult(BaseModel):
    attempt: AttemptOut
    subject_name: str
    correct_count: int
    total_questions: int
    score: int
    grade: str
    questions: List[QuestionResult]


class AttemptSummary(BaseModel):
    id: int
    user_id: str
    user_email: Optional[str] = None
    user_full_name: Optional[str] = None
    subject_id: int
    subject_name: str
    exam_name: str
    status: str  # in_progress | submitted
    total_questions: int
    correct_count: Optional[int] = None
    score: Optional[int] = None
    submitted_at: Optional[datetime] = None
    created_at: datetime
