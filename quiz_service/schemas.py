from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


# Start
class ChoiceOut(BaseModel):
    # is_correct is deliberately absent: the answer key never leaves the server
    choice_id: UUID
    choice_label: str
    choice_text: str

class QuestionOut(BaseModel):
    question_id: UUID
    prompt: str
    explanation: str
    citation_text: str
    choices: list[ChoiceOut]

class StartQuizOut(BaseModel):
    ok: bool = True
    questions: list[QuestionOut]


# Submit
class SubmitAnswerIn(BaseModel):
    question_id: UUID
    choice_id: UUID

class SubmitQuizOut(BaseModel):
    ok: bool = True
    quiz_session_id: UUID
    correct_count: int = Field(ge=0)
    percent_score: int | float


# Domains
class DomainOut(BaseModel):
    domain_id: UUID
    domain_label: str

class DomainListOut(BaseModel):
    ok: bool = True
    domains: list[DomainOut]


# Session history / review
class SessionSummaryOut(BaseModel):
    quiz_session_id: UUID
    domain_id: UUID | None
    status: str
    submitted_at: datetime | None
    question_count: int
    correct_count: int
    percent_score: int | float

class SessionListOut(BaseModel):
    ok: bool = True
    sessions: list[SessionSummaryOut]

class ReviewQuestionOut(BaseModel):
    ordinal: int
    question_id: UUID
    prompt: str
    explanation: str
    citation_text: str
    domain_id: UUID
    difficulty: int
    chosen_choice_label: str
    chosen_choice_text: str
    is_correct: bool

class GroupScoreOut(BaseModel):
    group_id: UUID
    question_count: int
    correct_count: int
    percent_score: int | float

class SessionReviewOut(BaseModel):
    ok: bool = True
    session: SessionSummaryOut
    questions: list[ReviewQuestionOut]
    domain_scores: list[GroupScoreOut]
    category_scores: list[GroupScoreOut]
