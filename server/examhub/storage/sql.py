"""
SQLAlchemy-backed storage. One instance wraps one session for one request.
"""
import logging
from contextlib import contextmanager
from typing import Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from examhub.database import init_db, make_engine, make_session_factory
from examhub.models import Answer, Exam, Question, Submission, User, UserRole
from examhub.storage.base import DuplicateRecord, Storage

logger = logging.getLogger(__name__)


class SqlStorage(Storage):
    def __init__(self, session: Session):
        self.session = session
        self._depth = 0

    @contextmanager
    def transaction(self):
        self._depth += 1
        try:
            yield self
            if self._depth == 1:
                self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateRecord(str(e.orig)) from e
        except BaseException:
            if self._depth == 1:
                self.session.rollback()
            raise
        finally:
            self._depth -= 1

    def _add(self, instance):
        with self.transaction():
            self.session.add(instance)
            self.session.flush()
        return instance

    def _update(self, model, row_id: int, data: Dict):
        with self.transaction():
            instance = self.session.get(model, row_id)
            if instance is None:
                return None
            for key, value in data.items():
                setattr(instance, key, value)
            self.session.flush()
        return instance

    # Users
    def get_user(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.session.scalar(select(User).where(User.username == username))

    def create_user(self, data: Dict) -> User:
        return self._add(User(**data))

    def update_user(self, user_id: int, data: Dict) -> Optional[User]:
        return self._update(User, user_id, data)

    def get_students_by_class(self, class_name: str) -> List[User]:
        stmt = select(User).where(User.role == UserRole.STUDENT, User.class_name == class_name).order_by(User.id)
        return list(self.session.scalars(stmt))

    def get_all_classes(self) -> List[str]:
        stmt = (
            select(User.class_name)
            .where(User.role == UserRole.STUDENT, User.class_name.is_not(None))
            .distinct()
            .order_by(User.class_name)
        )
        return [name for name in self.session.scalars(stmt) if name]

    # Exams
    def create_exam(self, data: Dict) -> Exam:
        return self._add(Exam(**data))

    def get_exam(self, exam_id: int) -> Optional[Exam]:
        return self.session.get(Exam, exam_id)

    def update_exam(self, exam_id: int, data: Dict) -> Optional[Exam]:
        return self._update(Exam, exam_id, data)

    def delete_exam(self, exam_id: int) -> bool:
        with self.transaction():
            exam = self.session.get(Exam, exam_id)
            if exam is None:
                return False
            submission_ids = select(Submission.id).where(Submission.exam_id == exam_id)
            self.session.execute(delete(Answer).where(Answer.submission_id.in_(submission_ids)))
            self.session.execute(delete(Submission).where(Submission.exam_id == exam_id))
            self.session.execute(delete(Question).where(Question.exam_id == exam_id))
            self.session.delete(exam)
        return True

    def get_exams_for_teacher(self, teacher_id: int) -> List[Exam]:
        return list(self.session.scalars(select(Exam).where(Exam.created_by_id == teacher_id).order_by(Exam.id)))

    def get_exams_for_class(self, class_name: str) -> List[Exam]:
        return list(self.session.scalars(select(Exam).where(Exam.class_name == class_name).order_by(Exam.id)))

    # Questions
    def create_question(self, data: Dict) -> Question:
        return self._add(Question(**data))

    def get_question(self, question_id: int) -> Optional[Question]:
        return self.session.get(Question, question_id)

    def get_questions_by_exam(self, exam_id: int) -> List[Question]:
        return list(self.session.scalars(select(Question).where(Question.exam_id == exam_id).order_by(Question.id)))

    def update_question(self, question_id: int, data: Dict) -> Optional[Question]:
        return self._update(Question, question_id, data)

    def delete_question(self, question_id: int) -> bool:
        with self.transaction():
            question = self.session.get(Question, question_id)
            if question is None:
                return False
            self.session.delete(question)
        return True

    def count_answers_for_question(self, question_id: int) -> int:
        return self.session.scalar(select(func.count(Answer.id)).where(Answer.question_id == question_id)) or 0

    # Submissions
    def create_submission(self, data: Dict) -> Submission:
        return self._add(Submission(**data))

    def get_submission(self, submission_id: int) -> Optional[Submission]:
        return self.session.get(Submission, submission_id)

    def update_submission(self, submission_id: int, data: Dict) -> Optional[Submission]:
        return self._update(Submission, submission_id, data)

    def find_submission(self, exam_id: int, user_id: int, for_update: bool = False) -> Optional[Submission]:
        stmt = select(Submission).where(Submission.exam_id == exam_id, Submission.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.scalar(stmt)

    def get_submissions_by_exam(self, exam_id: int) -> List[Submission]:
        return list(self.session.scalars(select(Submission).where(Submission.exam_id == exam_id).order_by(Submission.id)))

    def get_submissions_by_student(self, user_id: int) -> List[Submission]:
        return list(self.session.scalars(select(Submission).where(Submission.user_id == user_id).order_by(Submission.id)))

    # Answers
    def save_answer(self, data: Dict) -> Answer:
        return self._add(Answer(**data))

    def get_answers_by_submission(self, submission_id: int) -> List[Answer]:
        stmt = select(Answer).where(Answer.submission_id == submission_id).order_by(Answer.id)
        return list(self.session.scalars(stmt))


class SqlStorageProvider:
    """Owns the engine; hands out one SqlStorage per request."""

    def __init__(self, database_url: str, echo: bool = False):
        self.engine = make_engine(database_url, echo=echo)
        self.session_factory = make_session_factory(self.engine)

    def init(self) -> None:
        init_db(self.engine)

    @contextmanager
    def __call__(self):
        session = self.session_factory()
        try:
            yield SqlStorage(session)
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
