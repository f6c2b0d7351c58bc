"""
Repository interface shared by the SQL and in-memory backends.
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from examhub.models import Answer, Exam, Question, Submission, User


class DuplicateRecord(Exception):
    """A write violated a uniqueness rule (username, exam+user, submission+question)."""


class Storage(ABC):
    """
    Point lookups, foreign-key filters and row-level writes for every table.

    Writes made inside ``transaction()`` are committed together or not at all.
    Create and update methods return the affected row.
    """

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator["Storage"]:
        ...

    # Users
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    def create_user(self, data: Dict) -> User: ...

    @abstractmethod
    def update_user(self, user_id: int, data: Dict) -> Optional[User]: ...

    @abstractmethod
    def get_students_by_class(self, class_name: str) -> List[User]: ...

    @abstractmethod
    def get_all_classes(self) -> List[str]: ...

    # Exams
    @abstractmethod
    def create_exam(self, data: Dict) -> Exam: ...

    @abstractmethod
    def get_exam(self, exam_id: int) -> Optional[Exam]: ...

    @abstractmethod
    def update_exam(self, exam_id: int, data: Dict) -> Optional[Exam]: ...

    @abstractmethod
    def delete_exam(self, exam_id: int) -> bool: ...

    @abstractmethod
    def get_exams_for_teacher(self, teacher_id: int) -> List[Exam]: ...

    @abstractmethod
    def get_exams_for_class(self, class_name: str) -> List[Exam]: ...

    # Questions
    @abstractmethod
    def create_question(self, data: Dict) -> Question: ...

    @abstractmethod
    def get_question(self, question_id: int) -> Optional[Question]: ...

    @abstractmethod
    def get_questions_by_exam(self, exam_id: int) -> List[Question]: ...

    @abstractmethod
    def update_question(self, question_id: int, data: Dict) -> Optional[Question]: ...

    @abstractmethod
    def delete_question(self, question_id: int) -> bool: ...

    @abstractmethod
    def count_answers_for_question(self, question_id: int) -> int: ...

    # Submissions
    @abstractmethod
    def create_submission(self, data: Dict) -> Submission: ...

    @abstractmethod
    def get_submission(self, submission_id: int) -> Optional[Submission]: ...

    @abstractmethod
    def update_submission(self, submission_id: int, data: Dict) -> Optional[Submission]: ...

    @abstractmethod
    def find_submission(self, exam_id: int, user_id: int, for_update: bool = False) -> Optional[Submission]: ...

    @abstractmethod
    def get_submissions_by_exam(self, exam_id: int) -> List[Submission]: ...

    @abstractmethod
    def get_submissions_by_student(self, user_id: int) -> List[Submission]: ...

    # Answers
    @abstractmethod
    def save_answer(self, data: Dict) -> Answer: ...

    @abstractmethod
    def get_answers_by_submission(self, submission_id: int) -> List[Answer]: ...
