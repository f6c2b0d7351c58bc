"""
Request dependencies: per-request storage and the session-authenticated caller.
"""
from typing import Iterator

from fastapi import Depends, Request

from examhub.errors import AccessDenied, AuthenticationRequired, NotFound
from examhub.models import Exam, User, UserRole
from examhub.storage import Storage

SESSION_USER_KEY = "user_id"


def get_storage(request: Request) -> Iterator[Storage]:
    with request.app.state.storage_provider() as storage:
        yield storage


def current_user(request: Request, storage: Storage = Depends(get_storage)) -> User:
    user_id = request.session.get(SESSION_USER_KEY)
    user = storage.get_user(user_id) if user_id else None
    if user is None:
        request.session.pop(SESSION_USER_KEY, None)
        raise AuthenticationRequired()
    return user


def require_teacher(user: User = Depends(current_user)) -> User:
    if user.role != UserRole.TEACHER:
        raise AccessDenied()
    return user


def require_student(user: User = Depends(current_user)) -> User:
    if user.role != UserRole.STUDENT:
        raise AccessDenied()
    return user


def login_session(request: Request, user: User) -> None:
    request.session.clear()
    request.session[SESSION_USER_KEY] = user.id


def owned_exam(storage: Storage, exam_id: int, teacher: User) -> Exam:
    exam = storage.get_exam(exam_id)
    if exam is None:
        raise NotFound("Exam not found")
    if exam.created_by_id != teacher.id:
        raise AccessDenied()
    return exam
