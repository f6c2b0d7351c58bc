from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict, Literal
from datetime import datetime
from examhub.models.clock import as_naive_utc
from examhub.models.content import ExamStatus, Difficulty
from examhub.models.session import SubmissionStatus
from examhub.models.user import UserRole


OptionLabel = Literal["A", "B", "C", "D"]


class RequestModel(BaseModel):
    """Request bodies reject unknown fields."""

    class Config:
        extra = "forbid"
        str_strip_whitespace = True


# =============================================================================
# Users / auth
# =============================================================================

class LoginRequest(RequestModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RegisterTeacherRequest(RequestModel):
    full_name: str = Field(min_length=1, max_length=100)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=100)
    password: str = Field(min_length=6)


class RegisterStudentRequest(RequestModel):
    student_code: str = Field(min_length=1, max_length=20)
    full_name: str = Field(min_length=1, max_length=100)
    class_name: str = Field(min_length=1, max_length=10)
    password: Optional[str] = Field(default=None, min_length=6)  # Defaults to the student code


class UserResponse(BaseModel):
    id: int
    username: str
    full_name: str
    email: Optional[str] = None
    role: UserRole
    student_code: Optional[str] = None
    class_name: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# Exams
# =============================================================================

class ExamBase(RequestModel):
    title: str = Field(min_length=1, max_length=255)
    subject: str = Field(min_length=1, max_length=50)
    class_name: str = Field(min_length=1, max_length=10)
    topic: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration: int = Field(ge=1)  # Minutes
    status: ExamStatus = ExamStatus.UPCOMING

    @field_validator("start_time", "end_time")
    @classmethod
    def _naive_utc(cls, value):
        return as_naive_utc(value)


class ExamCreate(ExamBase):
    @model_validator(mode="after")
    def _window(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class ExamUpdate(RequestModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    subject: Optional[str] = Field(default=None, min_length=1, max_length=50)
    class_name: Optional[str] = Field(default=None, min_length=1, max_length=10)
    topic: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, ge=1)
    status: Optional[ExamStatus] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _naive_utc(cls, value):
        return as_naive_utc(value)


class ExamResponse(BaseModel):
    id: int
    title: str
    subject: str
    class_name: str
    topic: Optional[str] = None
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration: int
    status: ExamStatus
    effective_status: ExamStatus
    created_by_id: int
    created_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# Questions
# =============================================================================

class QuestionOptions(RequestModel):
    """Exactly the four labelled options."""
    A: str = Field(min_length=1)
    B: str = Field(min_length=1)
    C: str = Field(min_length=1)
    D: str = Field(min_length=1)


class QuestionCreate(RequestModel):
    content: str = Field(min_length=1)
    options: QuestionOptions
    correct_answer: OptionLabel
    points: int = Field(default=1, ge=1)
    difficulty: Difficulty = Difficulty.MEDIUM
    topic: Optional[str] = Field(default=None, max_length=50)


class QuestionUpdate(RequestModel):
    content: Optional[str] = Field(default=None, min_length=1)
    options: Optional[QuestionOptions] = None
    correct_answer: Optional[OptionLabel] = None
    points: Optional[int] = Field(default=None, ge=1)
    difficulty: Optional[Difficulty] = None
    topic: Optional[str] = Field(default=None, max_length=50)


class StudentQuestionResponse(BaseModel):
    """A question as shown while taking the exam (no correct answer)."""
    id: int
    exam_id: int
    content: str
    options: Dict[str, str]
    points: int
    difficulty: Difficulty
    topic: Optional[str] = None

    class Config:
        from_attributes = True


class QuestionResponse(StudentQuestionResponse):
    correct_answer: str
    created_at: datetime


# =============================================================================
# Submissions
# =============================================================================

class AnswerItem(RequestModel):
    question_id: int
    answer: Optional[OptionLabel] = None


class SubmitExamRequest(RequestModel):
    """Submit all exam answers."""
    answers: List[AnswerItem]


class SubmissionResponse(BaseModel):
    id: int
    exam_id: int
    user_id: int
    start_time: datetime
    end_time: Optional[datetime] = None
    score: Optional[int] = None
    status: SubmissionStatus

    class Config:
        from_attributes = True


class SubmissionWithExam(SubmissionResponse):
    exam: Optional[ExamResponse] = None


class SubmissionWithStudent(SubmissionResponse):
    student: UserResponse


class AnswerResponse(BaseModel):
    id: int
    submission_id: int
    question_id: int
    answer: Optional[str] = None
    is_correct: bool
    created_at: datetime

    class Config:
        from_attributes = True


class AnswerWithQuestion(AnswerResponse):
    question: Optional[QuestionResponse] = None


class ScoreStatistics(BaseModel):
    average_score: float
    highest_score: int
    lowest_score: int
    max_score: int


class ExamResultsResponse(BaseModel):
    exam_id: int
    total_submissions: int
    completed_submissions: int
    statistics: ScoreStatistics
