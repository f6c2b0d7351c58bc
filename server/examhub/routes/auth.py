from fastapi import APIRouter, Depends, Request, Response

from examhub.config import settings
from examhub.errors import AccessDenied
from examhub.models import User
from examhub.routes.deps import current_user, get_storage, login_session, require_teacher
from examhub.schemas import LoginRequest, RegisterStudentRequest, RegisterTeacherRequest, UserResponse
from examhub.services import accounts
from examhub.storage import Storage

router = APIRouter(tags=["Auth"])


@router.post("/register/teacher", response_model=UserResponse, status_code=201)
def register_teacher(
    body: RegisterTeacherRequest,
    request: Request,
    storage: Storage = Depends(get_storage),
):
    """
    Register a teacher account and log it in.
    The username is derived from the full name.
    """
    if not settings.allow_teacher_signup:
        raise AccessDenied("Teacher registration is closed")
    user = accounts.register_teacher(storage, body.full_name, body.email, body.password)
    login_session(request, user)
    return user


@router.post("/register/student", response_model=UserResponse, status_code=201)
def register_student(
    body: RegisterStudentRequest,
    teacher: User = Depends(require_teacher),
    storage: Storage = Depends(get_storage),
):
    """Teachers register students; the default password is the student code."""
    return accounts.register_student(
        storage, body.student_code, body.full_name, body.class_name, body.password
    )


@router.post("/login", response_model=UserResponse)
def login(body: LoginRequest, request: Request, storage: Storage = Depends(get_storage)):
    user = accounts.authenticate(storage, body.username, body.password)
    login_session(request, user)
    return user


@router.post("/logout")
def logout(request: Request):
    request.session.clear()
    return Response(status_code=200)


@router.get("/user", response_model=UserResponse)
def get_current_user(user: User = Depends(current_user)):
    return user
