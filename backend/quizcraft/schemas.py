# Pydantic domain and request/response schemas.
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# Base model exchanging camelCase JSON while keeping snake_case attributes.
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Difficulty(str, Enum):
    easy = "easy"
    medium = "medium"
    hard = "hard"


class TimerType(str, Enum):
    total = "total"
    per_question = "per-question"


class FeedbackStyle(str, Enum):
    immediate = "immediate"
    end = "end"


class QuestionStatus(str, Enum):
    unseen = "unseen"
    seen = "seen"
    answered = "answered"
    skipped = "skipped"


# Validated quiz configuration as stored with a quiz.
class QuizConfig(CamelModel):
    topic: str = Field(..., min_length=1)
    exam_context: Optional[str] = None
    grade_level: str = "general"
    difficulty: Difficulty = Difficulty.medium
    number_of_questions: int = Field(..., gt=0)
    marks_per_question: float = Field(1, gt=0)
    negative_marking: bool = False
    negative_marks_value: float = Field(0, ge=0)
    timer_enabled: bool = False
    timer_type: Optional[TimerType] = None
    time_limit: Optional[float] = Field(None, gt=0)
    feedback_style: FeedbackStyle = FeedbackStyle.end


# A single multiple-choice question with four options.
class Question(CamelModel):
    question: str
    options: List[str]
    correct_answer: int
    explanation: str = ""


# Request payload for generating a quiz; topic and count are checked by the generator.
class QuizGenerateCreate(CamelModel):
    topic: Optional[str] = None
    number_of_questions: Optional[int] = None
    exam_context: Optional[str] = None
    grade_level: Optional[str] = None
    difficulty: Difficulty = Difficulty.medium
    marks_per_question: float = 1
    negative_marking: bool = False
    negative_marks_value: Optional[float] = None
    timer_enabled: bool = False
    timer_type: Optional[TimerType] = None
    time_limit: Optional[float] = None
    feedback_style: FeedbackStyle = FeedbackStyle.end


# Response model for a generated quiz.
class QuizGenerateOut(CamelModel):
    quiz_id: str


# Response model for quiz list entries.
class QuizSummaryOut(CamelModel):
    id: str
    topic: str
    number_of_questions: int
    created_at: str


# Response model for taking a quiz; never carries the owner.
class QuizTakeOut(CamelModel):
    id: str
    config: QuizConfig
    questions: List[Question]


# Request payload for submitting a completed attempt.
class AttemptCreate(CamelModel):
    quiz_id: str
    answers: List[Optional[int]]


# Response model for a recorded attempt.
class AttemptOut(CamelModel):
    attempt_id: str
    score: float
    max_score: float
    percentage: float


# Response model for attempt list entries.
class AttemptSummaryOut(CamelModel):
    id: str
    quiz_id: str
    score: float
    max_score: float
    percentage: float
    completed_at: str


# Quiz section of an attempt review.
class AttemptQuizOut(CamelModel):
    id: str
    topic: str
    config: QuizConfig
    questions: List[Question]


# Response model for reviewing an attempt.
class AttemptResultOut(CamelModel):
    id: str
    quiz_id: str
    answers: List[Optional[int]]
    score: float
    max_score: float
    percentage: float
    completed_at: str
    quiz: AttemptQuizOut


# Request payload for completing sign-in with an identity provider profile.
class SessionCreate(CamelModel):
    email: str = Field(..., min_length=3)
    name: Optional[str] = None
    image: Optional[str] = None


# Response model for a created session.
class SessionOut(CamelModel):
    user_id: str
    token: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None


# Request payload for an on-demand answer explanation.
class ExplanationCreate(CamelModel):
    question: Question
    user_answer: int = Field(..., ge=0)


class ExplanationOut(CamelModel):
    explanation: str
