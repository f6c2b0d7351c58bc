"""
Models package initialization
Import all models here to ensure they are registered with SQLAlchemy
"""

from examhub.models.user import User, UserRole
from examhub.models.content import Exam, Question, ExamStatus, Difficulty, OPTION_LABELS
from examhub.models.session import Submission, Answer, SubmissionStatus

__all__ = [
    "User",
    "UserRole",
    "Exam",
    "Question",
    "ExamStatus",
    "Difficulty",
    "OPTION_LABELS",
    "Submission",
    "Answer",
    "SubmissionStatus",
]
