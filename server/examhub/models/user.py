from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum
from examhub.database import Base
from examhub.models.clock import utcnow
import enum


class UserRole(str, enum.Enum):
    TEACHER = "teacher"
    STUDENT = "student"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=True)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.STUDENT)
    student_code = Column(String(20), unique=True, nullable=True)
    class_name = Column(String(10), index=True, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def is_teacher(self) -> bool:
        return self.role == UserRole.TEACHER

    def __repr__(self):
        return f"<User {self.username} ({self.role})>"
