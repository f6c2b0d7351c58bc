from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, Enum as SQLEnum
from examhub.database import Base
from examhub.models.clock import utcnow
import enum


OPTION_LABELS = ("A", "B", "C", "D")


class ExamStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    DRAFT = "draft"


class Difficulty(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Exam(Base):
    """Timed exams created by teachers for one class"""
    __tablename__ = "exams"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    subject = Column(String(50), nullable=False)
    class_name = Column(String(10), index=True, nullable=False)
    topic = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration = Column(Integer, nullable=False)  # Minutes
    status = Column(SQLEnum(ExamStatus), nullable=False, default=ExamStatus.UPCOMING)
    created_by_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def status_at(self, now) -> ExamStatus:
        """Status implied by the time window; drafts stay drafts."""
        if self.status == ExamStatus.DRAFT:
            return ExamStatus.DRAFT
        if now < self.start_time:
            return ExamStatus.UPCOMING
        if now > self.end_time:
            return ExamStatus.COMPLETED
        return ExamStatus.ACTIVE

    @property
    def effective_status(self) -> ExamStatus:
        return self.status_at(utcnow())


class Question(Base):
    """Four-option multiple choice question belonging to one exam"""
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id", ondelete="CASCADE"), index=True, nullable=False)
    content = Column(Text, nullable=False)  # May embed $...$ math
    options = Column(JSON, nullable=False)  # {"A": "...", "B": "...", "C": "...", "D": "..."}
    correct_answer = Column(String(1), nullable=False)
    points = Column(Integer, nullable=False, default=1)
    difficulty = Column(SQLEnum(Difficulty), nullable=False, default=Difficulty.MEDIUM)
    topic = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
